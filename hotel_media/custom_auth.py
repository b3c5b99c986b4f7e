# hotel_media/custom_auth.py
from django.utils.translation import gettext_lazy as _
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework_simplejwt.models import TokenUser
from rest_framework_simplejwt.settings import api_settings as simple_jwt_settings


class ForceTokenUserJWTAuthentication(JWTAuthentication):
    def get_user(self, validated_token):
        """
        Returns a TokenUser built from the validated token.
        Admin accounts live in the auth service, so no local User lookup happens.
        """
        if simple_jwt_settings.USER_ID_CLAIM not in validated_token:
            raise InvalidToken(_("Token contained no recognizable user identification"))
        return TokenUser(validated_token)
