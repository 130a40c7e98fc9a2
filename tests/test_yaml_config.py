"""Tests for tm2bd.yaml_config."""

from tm2bd.yaml_config import SyncProfile, load_profile


class TestLoadProfile:
    """Tests for YAML profile loading."""

    def test_missing_file_gives_empty_profile(self, tmp_path):
        assert load_profile(tmp_path / "nope.yaml") == SyncProfile()

    def test_loads_all_keys(self, tmp_path):
        path = tmp_path / ".tm2bd.yaml"
        path.write_text("tasks: t.json\nmap_file: m.json\nsave_partial: true\n")
        assert load_profile(path) == SyncProfile(tasks="t.json", map_file="m.json", save_partial=True)

    def test_invalid_values_are_ignored(self, tmp_path):
        path = tmp_path / ".tm2bd.yaml"
        path.write_text("tasks: ''\nmap_file: 3\nsave_partial: sometimes\n")
        assert load_profile(path) == SyncProfile()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / ".tm2bd.yaml"
        path.write_text("tasks: [unclosed\n")
        assert load_profile(path) == SyncProfile()

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / ".tm2bd.yaml"
        path.write_text("- a\n- b\n")
        assert load_profile(path) == SyncProfile()

    def test_empty_file(self, tmp_path):
        path = tmp_path / ".tm2bd.yaml"
        path.write_text("")
        assert load_profile(path) == SyncProfile()
