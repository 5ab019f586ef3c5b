import pytest

from facetrack.config import TrackerConfig, load_config, resolve_setting
from facetrack.io_utils import dump_yaml
from facetrack.types import EmotionScores


def test_emotion_scores_from_mapping_and_dominant():
    scores = EmotionScores.from_mapping({"happiness": 0.6, "surprise": 0.3, "neutral": 0.1})
    assert scores.dominant == "happiness"
    assert scores.as_dict()["anger"] == 0.0


def test_emotion_scores_tie_prefers_declaration_order():
    assert EmotionScores(fear=0.5, anger=0.5).dominant == "anger"


def test_emotion_scores_rejects_unknown_keys():
    with pytest.raises(ValueError):
        EmotionScores.from_mapping({"joy": 1.0})


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "tracker.yaml"
    dump_yaml(path, {"confirm_frames": 2, "max_match_distance": 80.0, "det_size": [320, 320]})
    config = load_config(path)
    assert config.confirm_frames == 2
    assert config.max_match_distance == 80.0
    assert config.det_size == (320, 320)
    assert config.max_missed_frames == TrackerConfig().max_missed_frames


def test_load_config_missing_file_uses_defaults(tmp_path):
    assert load_config(tmp_path / "missing.yaml") == TrackerConfig()


def test_config_rejects_unknown_keys():
    with pytest.raises(ValueError):
        TrackerConfig.from_dict({"kalman": True})


@pytest.mark.parametrize(
    "overrides",
    [{"confirm_frames": 0}, {"max_missed_frames": -1}, {"max_match_distance": -5.0}, {"workers": 0}],
)
def test_config_rejects_invalid_values(overrides):
    with pytest.raises(ValueError):
        TrackerConfig(**overrides)


def test_config_round_trips_through_dict():
    config = TrackerConfig(stride=2, det_size=(480, 480))
    assert TrackerConfig.from_dict(config.to_dict()) == config


def test_resolve_setting_prefers_cli_then_config_then_default():
    cfg = {"stride": 3}
    assert resolve_setting(5, cfg, "stride", 1) == 5
    assert resolve_setting(None, cfg, "stride", 1) == 3
    assert resolve_setting(None, {}, "stride", 1) == 1
