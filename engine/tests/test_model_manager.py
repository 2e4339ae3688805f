"""
Tests for file-backed screener model storage.
"""

import json
from pathlib import Path

import pytest

from screener_engine.errors import ModelValidationError
from screener_engine.screeners import ModelManager, ScreenerModel, ScreenerStep


@pytest.fixture
def manager(tmp_path: Path, registry) -> ModelManager:
    return ModelManager(tmp_path / "models", registry)


class TestModelManager:
    """Tests for ModelManager."""

    def test_save_and_reload(self, manager, dollar_volume_model, registry) -> None:
        stored = manager.save(dollar_volume_model)
        assert manager.model_path(stored.model_id).exists()

        fresh = ModelManager(manager.models_dir, registry)
        loaded = fresh.get(stored.model_id)
        assert loaded == stored
        assert fresh.load_errors == {}

    def test_save_refreshes_modified_at(self, manager, dollar_volume_model) -> None:
        stored = manager.save(dollar_volume_model)
        assert stored.modified_at >= dollar_volume_model.modified_at
        assert stored.created_at == dollar_volume_model.created_at

    def test_models_sorted_by_name(self, manager) -> None:
        for name in ("Zeta", "alpha", "Mid"):
            manager.save(
                ScreenerModel(display_name=name, steps=[ScreenerStep(screener_id="dollar_volume")])
            )
        assert [m.display_name for m in manager.all_models] == ["alpha", "Mid", "Zeta"]

    def test_enabled_models(self, manager, dollar_volume_model) -> None:
        manager.save(dollar_volume_model)
        manager.save(
            ScreenerModel(
                display_name="Off",
                is_enabled=False,
                steps=[ScreenerStep(screener_id="dollar_volume")],
            )
        )
        assert [m.display_name for m in manager.enabled_models] == ["Liquid"]

    def test_model_without_steps_rejected(self, manager) -> None:
        with pytest.raises(ModelValidationError):
            manager.save(ScreenerModel(display_name="Empty"))

    def test_blank_name_rejected(self, manager) -> None:
        model = ScreenerModel(display_name="   ", steps=[ScreenerStep(screener_id="aptr")])
        with pytest.raises(ModelValidationError):
            manager.save(model)

    def test_invalid_step_rejected(self, manager) -> None:
        model = ScreenerModel(
            display_name="Bad",
            steps=[
                ScreenerStep(screener_id="dollar_volume"),
                ScreenerStep(screener_id="volume_spike", parameters={"period": -1}),
            ],
        )
        with pytest.raises(ModelValidationError) as exc:
            manager.save(model)
        assert exc.value.details["step"] == 1

    def test_invalid_documents_skipped(self, manager, dollar_volume_model) -> None:
        manager.save(dollar_volume_model)
        (manager.models_dir / "garbage.json").write_text("{not json", encoding="utf-8")
        unknown = ScreenerModel(display_name="Unknown", steps=[ScreenerStep(screener_id="nope")])
        (manager.models_dir / f"{unknown.model_id}.json").write_text(
            unknown.model_dump_json(), encoding="utf-8"
        )

        models = manager.refresh()
        assert [m.model_id for m in models] == [dollar_volume_model.model_id]
        assert set(manager.load_errors) == {"garbage.json", f"{unknown.model_id}.json"}

    def test_duplicate_ids_rejected_on_load(self, manager, dollar_volume_model) -> None:
        stored = manager.save(dollar_volume_model)
        copy = json.loads(stored.model_dump_json())
        (manager.models_dir / "zz-copy.json").write_text(json.dumps(copy), encoding="utf-8")

        manager.refresh()
        assert len(manager.all_models) == 1
        assert "zz-copy.json" in manager.load_errors

    def test_delete(self, manager, dollar_volume_model) -> None:
        stored = manager.save(dollar_volume_model)
        assert manager.delete(stored.model_id)
        assert manager.get(stored.model_id) is None
        assert not manager.model_path(stored.model_id).exists()
        assert not manager.delete(stored.model_id)

    def test_model_id_availability(self, manager, dollar_volume_model) -> None:
        assert manager.is_model_id_available(dollar_volume_model.model_id)
        manager.save(dollar_volume_model)
        assert not manager.is_model_id_available(dollar_volume_model.model_id)

    def test_path_traversal_rejected(self, manager) -> None:
        with pytest.raises(ModelValidationError):
            manager.model_path("../escape")
