"""Basic smoke tests."""

import cadence_player
import cadence_player.version


def test_version_defined() -> None:
    assert isinstance(cadence_player.__version__, str)


def test_version_single_source_of_truth() -> None:
    assert cadence_player.__version__ == cadence_player.version.__version__


def test_help_epilog_mentions_version() -> None:
    assert cadence_player.version.__version__ in cadence_player.version.build_help_epilog()
