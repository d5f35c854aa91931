"""Tests for the matchbook command line entry point (offline commands only)."""

import json

from matchbook.cli import EXIT_ERROR, EXIT_NOT_A_MAP_LINK, EXIT_OK, main


class TestClassifyCommand:
    def test_map_link(self, capsys):
        url = "https://www.google.com/maps/place/Big+Ben/@51.5007292,-0.1246254,17z"
        assert main(["classify", f"look: {url}"]) == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert output["link"]["is_valid"] is True
        assert output["link"]["canonical_url"] == url
        assert output["hints"]["name_fragment"] == "Big Ben"
        assert output["hints"]["coordinate_source"] == "viewport"

    def test_not_a_link(self, capsys):
        assert main(["classify", "hello"]) == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert output["link"]["is_valid"] is False
        assert "hints" not in output


class TestResolveCommand:
    def test_not_a_map_link_exit_code(self, capsys):
        assert main(["resolve", "see you at 8"]) == EXIT_NOT_A_MAP_LINK
        output = json.loads(capsys.readouterr().out)
        assert output["error_code"] == "not_a_map_link"


def test_no_command_prints_help(capsys):
    assert main([]) == EXIT_ERROR
    assert "usage" in capsys.readouterr().out
