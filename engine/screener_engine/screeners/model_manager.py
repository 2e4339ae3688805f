"""
File-backed storage for screener models.

Directory structure:
{models_dir}/
    {model_id}.json     # one document per ScreenerModel
"""

import re
import threading
from pathlib import Path

from pydantic import ValidationError

from screener_engine.errors import (
    ConfigurationError,
    ModelValidationError,
    PersistenceError,
)
from screener_engine.logging import get_logger
from screener_engine.screeners.models import ScreenerModel
from screener_engine.screeners.registry import ScreenerRegistry
from screener_engine.storage import atomic_write_text

logger = get_logger(__name__)

_MODEL_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class ModelManager:
    """
    JSON file-backed screener model storage.

    Models are validated against the screener registry when saved and when
    loaded. Invalid documents are reported through load_errors and skipped.
    """

    def __init__(self, models_dir: Path, registry: ScreenerRegistry) -> None:
        """
        Initialize model manager.

        Args:
            models_dir: Directory holding one JSON document per model
            registry: Registry used to validate screener ids and parameters
        """
        self._models_dir = Path(models_dir)
        self._models_dir.mkdir(parents=True, exist_ok=True)
        self._registry = registry

        self._lock = threading.RLock()
        self._models: dict[str, ScreenerModel] = {}
        self._load_errors: dict[str, str] = {}
        self._loaded = False

        logger.debug("ModelManager initialized at %s", self._models_dir)

    @property
    def models_dir(self) -> Path:
        return self._models_dir

    @property
    def load_errors(self) -> dict[str, str]:
        """File name -> reason, for documents rejected by the last load."""
        with self._lock:
            return dict(self._load_errors)

    def model_path(self, model_id: str) -> Path:
        if not _MODEL_ID_PATTERN.match(model_id):
            raise ModelValidationError(
                f"Invalid model id '{model_id}'",
                {"model_id": model_id},
            )
        return self._models_dir / f"{model_id}.json"

    # =========================================================================
    # Loading
    # =========================================================================

    def load_all(self) -> list[ScreenerModel]:
        """
        Load every model document from disk, replacing the in-memory set.

        Returns:
            Valid models sorted by display name
        """
        models: dict[str, ScreenerModel] = {}
        errors: dict[str, str] = {}

        for path in sorted(self._models_dir.glob("*.json")):
            try:
                model = ScreenerModel.model_validate_json(path.read_text(encoding="utf-8"))
                self.validate(model)
            except (OSError, ValidationError, ConfigurationError) as e:
                logger.warning("Skipping invalid model document %s: %s", path.name, e)
                errors[path.name] = str(e)
                continue

            if model.model_id in models:
                errors[path.name] = f"Duplicate model id {model.model_id}"
                logger.warning("Duplicate model id %s in %s", model.model_id, path.name)
                continue
            models[model.model_id] = model

        with self._lock:
            self._models = models
            self._load_errors = errors
            self._loaded = True

        logger.info("Loaded %d models (%d rejected)", len(models), len(errors))
        return self.all_models

    def refresh(self) -> list[ScreenerModel]:
        """Reload models from disk."""
        return self.load_all()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load_all()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, model_id: str) -> ScreenerModel | None:
        self._ensure_loaded()
        with self._lock:
            return self._models.get(model_id)

    @property
    def all_models(self) -> list[ScreenerModel]:
        self._ensure_loaded()
        with self._lock:
            return sorted(self._models.values(), key=lambda m: m.display_name.lower())

    @property
    def enabled_models(self) -> list[ScreenerModel]:
        return [m for m in self.all_models if m.is_enabled]

    def is_model_id_available(self, model_id: str) -> bool:
        """True if no loaded model or document uses this id."""
        self._ensure_loaded()
        with self._lock:
            if model_id in self._models:
                return False
        return not self.model_path(model_id).exists()

    # =========================================================================
    # Mutations
    # =========================================================================

    def validate(self, model: ScreenerModel) -> None:
        """
        Validate a model against the registry.

        Raises:
            ModelValidationError: If the model has no steps, an unknown
                screener, or invalid step parameters
        """
        if not model.display_name.strip():
            raise ModelValidationError(
                "Model display name must not be blank",
                {"model_id": model.model_id},
            )
        if not model.steps:
            raise ModelValidationError(
                f"Model '{model.display_name}' has no steps",
                {"model_id": model.model_id},
            )
        for index, step in enumerate(model.steps):
            try:
                self._registry.create(step.screener_id, step.parameters)
            except ConfigurationError as e:
                raise ModelValidationError(
                    f"Model '{model.display_name}' step {index}: {e.message}",
                    {"model_id": model.model_id, "step": index, **e.details},
                ) from e

    def save(self, model: ScreenerModel) -> ScreenerModel:
        """
        Validate and persist a model.

        Args:
            model: Model to insert or update

        Returns:
            The stored model (modified_at refreshed)

        Raises:
            ModelValidationError: If the model is invalid
            PersistenceError: If the document cannot be written
        """
        self.validate(model)
        stored = model.touched()
        path = self.model_path(stored.model_id)

        try:
            atomic_write_text(path, stored.model_dump_json(indent=2))
        except OSError as e:
            logger.error("Failed to save model %s: %s", stored.model_id, e)
            raise PersistenceError(
                f"Failed to save model '{stored.display_name}': {e}",
                {"model_id": stored.model_id, "path": str(path)},
            ) from e

        self._ensure_loaded()
        with self._lock:
            self._models[stored.model_id] = stored
        logger.debug("Saved model %s (%s)", stored.display_name, stored.model_id)
        return stored

    def delete(self, model_id: str) -> bool:
        """
        Delete a model.

        Returns:
            True if deleted, False if not found
        """
        self._ensure_loaded()
        path = self.model_path(model_id)
        with self._lock:
            existed = self._models.pop(model_id, None) is not None

        if path.exists():
            try:
                path.unlink()
            except OSError as e:
                raise PersistenceError(
                    f"Failed to delete model {model_id}: {e}",
                    {"model_id": model_id, "path": str(path)},
                ) from e
            existed = True

        if existed:
            logger.debug("Deleted model %s", model_id)
        return existed
