from rest_framework import serializers

from .models import HotelMediaIndex


class SourceImageSerializer(serializers.Serializer):
    url = serializers.URLField(max_length=2048)
    source_label = serializers.CharField(max_length=64, required=False, default="manual")


class IngestRequestSerializer(serializers.Serializer):
    images = SourceImageSerializer(many=True, allow_empty=False)
    slug = serializers.CharField(max_length=255, required=False)


class ReorderRequestSerializer(serializers.Serializer):
    slug = serializers.CharField(max_length=255)
    ordered_paths = serializers.ListField(child=serializers.CharField(max_length=1024), allow_empty=False)


class ReconcileAllRequestSerializer(serializers.Serializer):
    dry_run = serializers.BooleanField(required=False, default=False)


class VersionQuerySerializer(serializers.Serializer):
    slug = serializers.CharField(max_length=255, required=False)
    external_id = serializers.CharField(max_length=64, required=False)

    def validate(self, attrs):
        if not attrs.get('slug') and not attrs.get('external_id'):
            raise serializers.ValidationError("Either 'slug' or 'external_id' is required.")
        return attrs


class DeleteImageSerializer(serializers.Serializer):
    path = serializers.CharField(max_length=1024)


class HotelMediaIndexSerializer(serializers.ModelSerializer):
    class Meta:
        model = HotelMediaIndex
        fields = ['id', 'external_id', 'slug', 'file_name', 'file_path', 'public_url', 'file_type',
                  'file_size', 'sequence', 'original_url', 'updated_at']
        read_only_fields = fields
