import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "mcscall", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "mcscall" in cp.stdout.lower()
    assert "call" in cp.stdout


def test_cli_version() -> None:
    from mcscall import __version__

    cp = subprocess.run(
        [sys.executable, "-m", "mcscall", "--version"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert __version__ in cp.stdout
