"""
Entity Resolver

Matches free-text contact and category names against a user's known records
and creates new ones when nothing matches. Match order, first hit wins:
1. exact case-insensitive name (confidence 1.0)
2. exact normalized name (0.95) or any stored name variation (0.9)
3. containment fuzzy match scored by length ratio, strictly above threshold
4. create a new entity seeded with name variations (confidence 0)
"""
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import AppError
from app.models.category import Category
from app.models.contact import Contact
from app.utils.matching_rules import (
    normalize_name,
    generate_name_variations,
    containment_score,
    determine_contact_type,
    category_style,
)

logger = logging.getLogger(__name__)

CONTACT = "contact"
CATEGORY = "category"


@dataclass
class Resolution:
    entity: Any  # Contact or Category; transient (unsaved) when created in preview mode
    created: bool
    match_confidence: float
    matched_variation: Optional[str] = None


class EntityResolver:
    """Fuzzy name resolution for contacts and categories of one database session."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(
        self,
        name: str,
        kind: str,
        user_id: str,
        persist: bool = True,
        **attributes,
    ) -> Resolution:
        """
        Resolve `name` to an existing entity or create one.

        With persist=False a new entity is built but not written, so the
        caller can ask for confirmation first. Extra attributes (contact_type,
        category_id, bank_name, description, notes) only apply on creation.
        """
        operation = f"resolve_{kind}"
        if kind not in (CONTACT, CATEGORY):
            raise AppError(400, f"Unknown entity kind: {kind}", operation)
        if not name or not name.strip():
            raise AppError(400, f"{kind.capitalize()} name is required", operation)

        match = self.find(name, kind, user_id)
        if match:
            return match

        entity = self._build(name, kind, user_id, **attributes)
        if not persist:
            return Resolution(entity=entity, created=True, match_confidence=0.0)

        try:
            with self.db.begin_nested():
                self.db.add(entity)
                self.db.flush()
        except IntegrityError:
            # Lost a race against a concurrent create of the same normalized name
            logger.warning(f"Duplicate {kind} '{name}' for user {user_id}, retrying lookup")
            match = self.find(name, kind, user_id)
            if match:
                return match
            raise AppError(409, f"Could not create {kind} '{name}'", operation)

        logger.info(f"Created {kind} '{entity.name}' ({entity.id}) for user {user_id}")
        return Resolution(entity=entity, created=True, match_confidence=0.0)

    def find(self, name: str, kind: str, user_id: str) -> Optional[Resolution]:
        """Paths 1-3 of the algorithm; None when nothing clears the threshold."""
        model = Contact if kind == CONTACT else Category
        candidates = self._candidates(kind, user_id)
        if not candidates:
            return None

        # 1. Exact case-insensitive name
        exact = (
            self._scoped_query(kind, user_id)
            .filter(func.lower(model.name) == name.strip().lower())
            .first()
        )
        if exact:
            return Resolution(entity=exact, created=False, match_confidence=1.0)

        normalized = normalize_name(name)

        # 2. Normalized name, then stored variations
        for candidate in candidates:
            if candidate.normalized_name == normalized:
                return Resolution(
                    entity=candidate,
                    created=False,
                    match_confidence=0.95,
                    matched_variation=candidate.normalized_name,
                )
        for candidate in candidates:
            for variation in candidate.name_variations or []:
                if normalize_name(variation) == normalized:
                    return Resolution(
                        entity=candidate,
                        created=False,
                        match_confidence=0.9,
                        matched_variation=variation,
                    )

        # 3. Containment fuzzy match
        threshold = settings.contact_match_threshold if kind == CONTACT else settings.category_match_threshold
        best_match = None
        best_score = 0.0
        best_variation = None

        for candidate in candidates:
            forms = [normalize_name(candidate.name)] + [normalize_name(v) for v in candidate.name_variations or []]
            for form in forms:
                score = containment_score(normalized, form)
                if score > best_score and score > threshold:
                    best_score = score
                    best_match = candidate
                    best_variation = form

        if best_match:
            logger.info(f"Fuzzy matched {kind} '{name}' to '{best_match.name}' ({best_score:.2f})")
            return Resolution(
                entity=best_match,
                created=False,
                match_confidence=best_score,
                matched_variation=best_variation,
            )

        return None

    def _scoped_query(self, kind: str, user_id: str):
        if kind == CONTACT:
            return self.db.query(Contact).filter(Contact.user_id == user_id)
        return self.db.query(Category).filter(
            Category.is_active.is_(True),
            or_(Category.user_id == user_id, Category.is_system.is_(True)),
        )

    def _candidates(self, kind: str, user_id: str) -> List[Any]:
        model = Contact if kind == CONTACT else Category
        return self._scoped_query(kind, user_id).order_by(model.created_at, model.id).all()

    def _build(self, name: str, kind: str, user_id: str, **attributes):
        clean_name = " ".join(name.split())
        normalized = normalize_name(name)
        variations = generate_name_variations(name)

        if kind == CONTACT:
            contact_type = attributes.get("contact_type") or determine_contact_type(
                clean_name, attributes.get("bank_name"), attributes.get("description")
            )
            return Contact(
                user_id=user_id,
                name=clean_name,
                normalized_name=normalized,
                name_variations=variations,
                contact_type=contact_type,
                category_id=attributes.get("category_id"),
                notes=attributes.get("notes"),
            )

        icon, color = category_style(clean_name)
        return Category(
            user_id=user_id,
            name=clean_name,
            normalized_name=normalized,
            name_variations=variations,
            icon=icon,
            color=color,
            is_system=False,
            is_active=True,
        )
