import os
import shutil
import tempfile

import pytest
import yaml
from hypothesis import given, settings, strategies as st

from tabwindow.utils.config_manager import ConfigManager, load_default_config

# Keys without dots so a key is always a single path segment
keys = st.text(alphabet=st.characters(blacklist_characters="."), min_size=1, max_size=8)

# Minimal recursive strategy for generating JSON-compatible dictionaries
json_values = st.recursive(
    st.text(min_size=1) | st.integers() | st.floats(allow_nan=False) | st.booleans(),
    lambda children: st.lists(children) | st.dictionaries(keys, children),
    max_leaves=10
)


def paths_from_dict(d, prefix=""):
    paths = []
    if isinstance(d, dict):
        for k, v in d.items():
            new_prefix = f"{prefix}.{k}" if prefix else k
            paths.append(new_prefix)
            paths.extend(paths_from_dict(v, new_prefix))
    return paths


@st.composite
def config_and_path(draw):
    config = draw(st.dictionaries(keys, json_values, min_size=1, max_size=5))
    path = draw(st.sampled_from(paths_from_dict(config)))
    return config, path


class TestConfigManagerProperties:

    manager = ConfigManager()

    @given(config_and_path())
    @settings(max_examples=50)
    def test_get_value_consistency(self, data):
        """
        Property: get_value retrieves the value reached by walking the dot path.
        """
        config, path = data
        expected = config
        for k in path.split('.'):
            expected = expected[k]
        assert self.manager.get_value(config, path) == expected

    @given(st.dictionaries(keys, json_values), st.lists(keys, min_size=1, max_size=4), json_values)
    @settings(max_examples=50)
    def test_set_value_then_get_value(self, config, path_keys, value):
        """
        Property: a value written with set_value is read back by get_value.
        """
        path = ".".join(path_keys)
        self.manager.set_value(config, path, value)
        assert self.manager.get_value(config, path) == value

    @given(
        st.dictionaries(keys, st.integers(), min_size=1),
        st.dictionaries(keys, st.integers(), min_size=1),
    )
    @settings(max_examples=50)
    def test_merge_prefers_override(self, base, override):
        """
        Property: every override key wins, other base keys survive.
        """
        merged = self.manager.merge_configs({"section": base}, {"section": override})
        for k, v in override.items():
            assert merged["section"][k] == v
        for k, v in base.items():
            if k not in override:
                assert merged["section"][k] == v


class TestConfigFiles:

    @pytest.fixture(autouse=True)
    def setup_teardown(self):
        self.test_dir = tempfile.mkdtemp()
        self.config_dir = os.path.join(self.test_dir, "config")
        self.schema_dir = os.path.join(self.config_dir, "schemas")
        os.makedirs(self.schema_dir, exist_ok=True)

        self.manager = ConfigManager(config_dir=self.config_dir, schema_dir=self.schema_dir)

        yield

        shutil.rmtree(self.test_dir)

    def test_load_yaml_file(self):
        with open(os.path.join(self.config_dir, "custom.yaml"), "w") as f:
            yaml.safe_dump({"metrics": {"threshold": 0.7}}, f)
        config = self.manager.load_config("custom.yaml")
        assert config["metrics"]["threshold"] == 0.7

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            self.manager.load_config("absent.yaml")


class TestPipelineDefaults:

    def test_defaults_validate(self):
        config = load_default_config()
        assert config["timeseries"]["sequence_length"] == 12
        assert config["timeseries"]["horizons"] == 3
        assert config["timeseries"]["normalization"]["fit_scope"] == "full"
        assert config["digits"]["image_shape"] == [28, 28, 1]
        assert config["metrics"]["threshold"] == 0.5

    def test_overrides_are_merged(self, pipeline_config):
        config = load_default_config(pipeline_config)
        assert config["timeseries"]["sequence_length"] == 4
        assert config["timeseries"]["train_ratio"] == 0.5
        assert config["timeseries"]["feature_fields"] == ["Open", "Close"]

    @pytest.mark.parametrize("override, path", [
        ({"timeseries": {"train_ratio": 1.5}}, "timeseries -> train_ratio"),
        ({"timeseries": {"sequence_length": 0}}, "timeseries -> sequence_length"),
        ({"timeseries": {"normalization": {"fit_scope": "test"}}},
         "timeseries -> normalization -> fit_scope"),
        ({"digits": {"num_classes": "ten"}}, "digits -> num_classes"),
    ])
    def test_invalid_values_name_their_path(self, override, path):
        with pytest.raises(ValueError, match=path):
            load_default_config(override)
