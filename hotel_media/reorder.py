# hotel_media/reorder.py
import enum
import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, List, Tuple

from django.db import DatabaseError

from .exceptions import (
    CollisionRisk, ReorderAborted, ReorderConflict, ReorderValidationError, StaleOrdering, TransientIOError,
)
from .naming import (
    TIER_PUBLIC, TIERS, make_tmp_name, normalize_slug, pad2, parse_canonical, parse_tmp_name,
    replace_sequence, sequence_of, split_path,
)
from .object_store import ObjectStoreClient
from .repository import MediaIndexRepository

logger = logging.getLogger(__name__)


class StepState(str, enum.Enum):
    PLANNED = "planned"
    STAGED = "staged_to_temp"
    FINALIZED = "finalized"


@dataclass
class RenameStep:
    tier: str
    source: str
    temp: str
    final: str
    sequence: int
    state: StepState = StepState.PLANNED

    def to_dict(self):
        return {"tier": self.tier, "source": self.source, "temp": self.temp, "final": self.final, "state": self.state.value}


@dataclass
class ReorderResult:
    changed: bool
    count: int
    slug: str = ""
    external_id: str = ""

    def to_dict(self):
        return {"changed": self.changed, "count": self.count, "slug": self.slug, "external_id": self.external_id}


class ReorderEngine:
    """
    Renumbers one hotel's photos across both tiers.

    Every affected object goes PLANNED -> STAGED (renamed into a temp name)
    -> FINALIZED (renamed to its new sequence). No object is finalized until
    all of them are staged, so a permutation of sequences can never overwrite
    an object that has not moved out of the way yet.

    Temp names carry the source and target sequence plus the step number, so
    whatever an interrupted run leaves behind is settled at the start of the
    next run.

    With a repository, index rows follow their objects once every rename has
    landed.
    """

    def __init__(self, store: ObjectStoreClient, repository: MediaIndexRepository = None):
        self.store = store
        self.repository = repository

    def reorder(self, slug: str, ordered_public_paths: List[str]) -> ReorderResult:
        slug = normalize_slug(slug)
        external_id, old_sequences = self._validate(slug, ordered_public_paths)

        if self._recover_leftovers(slug, external_id):
            # The request was built against the numbering from before that run.
            raise StaleOrdering(
                "An interrupted reorder of this hotel has just been completed. "
                "Reload the images and submit the order again."
            )

        listings = self._list_tiers(slug)
        missing = [path for path in ordered_public_paths if split_path(path)[2] not in listings[TIER_PUBLIC]]
        if missing:
            raise StaleOrdering(f"These images no longer exist: {', '.join(missing)}.")

        mapping = {old: position + 1 for position, old in enumerate(old_sequences) if old != position + 1}
        if not mapping:
            logger.info(f"Reorder for {slug} ({external_id}): order already matches, nothing to do.")
            return ReorderResult(changed=False, count=0, slug=slug, external_id=external_id)

        run_token = f"{os.getpid()}t{time.time_ns()}"
        steps = self._plan(slug, external_id, mapping, listings, run_token)
        self._check_collisions(slug, steps, listings)

        logger.info(f"Reorder for {slug} ({external_id}): {len(mapping)} sequence(s) change, {len(steps)} object(s) to rename.")
        self._execute(steps)
        self._update_index(external_id, steps)
        return ReorderResult(changed=True, count=len(steps), slug=slug, external_id=external_id)

    def _validate(self, slug: str, paths: List[str]) -> Tuple[str, List[int]]:
        if not slug:
            raise ReorderValidationError("A slug is required.")
        if not isinstance(paths, (list, tuple)) or not paths:
            raise ReorderValidationError("At least one image path is required.")
        if len(set(paths)) != len(paths):
            raise ReorderValidationError("The ordering lists the same image more than once.")

        slugs, external_ids, sequences = set(), set(), []
        for path in paths:
            parts = split_path(path) if isinstance(path, str) else None
            if parts is None or parts[0] != TIER_PUBLIC:
                raise ReorderValidationError(f"'{path}' is not a public image path.")
            slugs.add(parts[1])
            parsed = parse_canonical(parts[2], parts[1])
            if parsed is None:
                raise ReorderValidationError(f"'{path}' does not follow the canonical naming scheme.")
            external_ids.add(parsed.external_id)
            sequences.append(parsed.sequence)

        if len(slugs) > 1:
            raise ReorderValidationError("All images must belong to the same slug.")
        if slugs != {slug}:
            raise ReorderValidationError(f"Images are not under public/{slug}/.")
        if len(external_ids) > 1:
            raise CollisionRisk("All images must belong to the same hotel.")
        if len(set(sequences)) != len(sequences):
            raise CollisionRisk("Two of the listed images share a sequence number.")
        return external_ids.pop(), sequences

    def _list_tiers(self, slug: str) -> Dict[str, Dict[str, object]]:
        return {tier: {obj.name: obj for obj in self.store.list(f"{tier}/{slug}")} for tier in TIERS}

    def _recover_leftovers(self, slug: str, external_id: str) -> bool:
        """
        Settles temp objects left behind by interrupted runs, one run at a time.

        Both phases walk the plan in step order, so a run that stopped during
        phase 1 still has step 0 in temp and is rolled back to its source
        names. Any other run got into phase 2 and is rolled forward.

        Returns True when some run was rolled forward.
        """
        listings = self._list_tiers(slug)
        runs = {}
        for tier, objects in listings.items():
            for name, obj in objects.items():
                tmp = parse_tmp_name(name)
                if tmp is not None and tmp.external_id == external_id:
                    runs.setdefault(tmp.run_token, []).append((tier, tmp, obj))

        rolled_forward = False
        for run_token, leftovers in sorted(runs.items()):
            leftovers.sort(key=lambda leftover: leftover[1].step)
            try:
                rolled_forward |= self._settle_run(slug, run_token, leftovers, listings)
            except TransientIOError as e:
                logger.error(f"Could not recover reorder run {run_token} for {slug}: {e}", exc_info=True)
                raise ReorderAborted("Could not clean up an earlier interrupted reorder. Try again.") from e

        if rolled_forward:
            logger.warning(
                f"Index rows of {slug} ({external_id}) may still carry the old numbering; "
                f"rebuild them with reconcile."
            )
        return rolled_forward

    def _settle_run(self, slug: str, run_token: str, leftovers, listings) -> bool:
        forward = all(tmp.step != 0 for _, tmp, _ in leftovers)
        # A final that already holds the same bytes means phase 2 had started.
        if any(self._same_object(f"{tier}/{slug}", tmp.final_name, obj, listings[tier]) for tier, tmp, obj in leftovers):
            forward = True

        moved = 0
        for tier, tmp, obj in leftovers:
            directory = f"{tier}/{slug}"
            objects = listings[tier]
            target_name = tmp.final_name if forward else tmp.source_name

            if self._same_object(directory, target_name, obj, objects):
                # The copy landed but the temp was never removed.
                self.store.remove([f"{directory}/{tmp.name}"])
            elif target_name in objects:
                raise ReorderConflict(
                    f"Leftover {directory}/{tmp.name} belongs at {target_name}, which holds a different image."
                )
            else:
                self.store.relocate(f"{directory}/{tmp.name}", f"{directory}/{target_name}")
                objects[target_name] = obj
                moved += 1
            objects.pop(tmp.name, None)

        logger.warning(
            f"Rolled reorder run {run_token} for {slug} {'forward' if forward else 'back'}: "
            f"{moved} object(s) moved, {len(leftovers) - moved} duplicate temp(s) removed."
        )
        return forward

    def _same_object(self, directory: str, name: str, tmp_obj, objects) -> bool:
        # A freed name may already hold another image of the same size.
        other = objects.get(name)
        if other is None or other.size != tmp_obj.size:
            return False
        return self.store.download(f"{directory}/{name}") == self.store.download(f"{directory}/{tmp_obj.name}")

    def _plan(self, slug: str, external_id: str, mapping: Dict[int, int], listings, run_token: str) -> List[RenameStep]:
        steps = []
        for tier in TIERS:
            for name in sorted(listings[tier]):
                old = sequence_of(name, external_id)
                if old not in mapping:
                    continue
                new = mapping[old]
                steps.append(RenameStep(
                    tier=tier,
                    source=f"{tier}/{slug}/{name}",
                    temp=f"{tier}/{slug}/{make_tmp_name(name, external_id, old, new, len(steps), run_token)}",
                    final=f"{tier}/{slug}/{replace_sequence(name, external_id, pad2(old), pad2(new))}",
                    sequence=new,
                ))
        return steps

    def _check_collisions(self, slug: str, steps: List[RenameStep], listings) -> None:
        moving = {step.source for step in steps}
        finals = set()
        for step in steps:
            if step.final in finals:
                raise CollisionRisk(f"Two images would both be renamed to {step.final}.")
            finals.add(step.final)
            final_name = split_path(step.final)[2]
            if final_name in listings[step.tier] and step.final not in moving:
                raise CollisionRisk(
                    f"{step.final} is taken by an image that is not part of this ordering. "
                    f"Include every image of the hotel in the new order."
                )

    def _execute(self, steps: List[RenameStep]) -> None:
        for step in steps:
            self._advance(step, step.source, step.temp, StepState.STAGED, steps)
        for step in steps:
            self._advance(step, step.temp, step.final, StepState.FINALIZED, steps)

    def _update_index(self, external_id: str, steps: List[RenameStep]) -> None:
        if self.repository is None:
            return
        moves = {step.source: (step.final, step.sequence, self.store.public_url(step.final)) for step in steps}
        try:
            moved = self.repository.move_paths(external_id, moves)
        except DatabaseError as e:
            # Storage is already renumbered; reconcile rebuilds the rows.
            logger.error(f"Index rows for {external_id} were not renumbered: {e}", exc_info=True)
            return
        logger.info(f"Renumbered {moved} index row(s) for {external_id}.")

    def _advance(self, step: RenameStep, source: str, target: str, state: StepState, steps: List[RenameStep]) -> None:
        try:
            self.store.relocate(source, target)
        except TransientIOError as e:
            logger.error(f"Reorder aborted while moving {source} -> {target}: {e}", exc_info=True)
            raise ReorderAborted(steps=[s.to_dict() for s in steps]) from e
        step.state = state
