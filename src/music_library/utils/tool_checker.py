"""
External tool discovery

Resolves the Chromaprint ``fpcalc`` executable from an ordered list of
candidate locations and reports installation hints when it is missing.
"""

import logging
import os
import platform
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional


def default_fpcalc_candidates() -> List[str]:
    """Default search order: PATH first, then the usual Windows install spots"""
    program_files = os.environ.get("PROGRAMFILES", "C:\\Program Files")
    program_files_x86 = os.environ.get("PROGRAMFILES(X86)", "C:\\Program Files (x86)")
    return [
        "fpcalc",
        str(Path("~") / ".chromaprint" / "fpcalc.exe"),
        str(Path(program_files) / "Chromaprint" / "fpcalc.exe"),
        str(Path(program_files_x86) / "Chromaprint" / "fpcalc.exe"),
    ]


def locate_tool(candidates: List[str]) -> Optional[str]:
    """
    Return the first candidate that resolves to an executable file.

    Bare names are looked up on PATH; anything else is treated as a path
    (``~`` is expanded).

    Args:
        candidates: Ordered candidate names or paths

    Returns:
        Absolute path of the tool or None
    """
    for candidate in candidates:
        if not candidate:
            continue

        if os.sep not in candidate and '/' not in candidate:
            found = shutil.which(candidate)
            if found:
                return found
            continue

        path = Path(candidate).expanduser()
        if path.is_file():
            return str(path)

    return None


@dataclass
class ToolInfo:
    """Information about an external tool"""
    name: str
    command: str
    package_name: str
    install_instructions: Dict[str, str]


FPCALC = ToolInfo(
    name="Chromaprint Fingerprinter",
    command="fpcalc",
    package_name="chromaprint",
    install_instructions={
        'linux': "sudo apt-get install libchromaprint-tools",
        'darwin': "brew install chromaprint",
        'windows': "Download from https://acoustid.org/chromaprint and add to PATH",
    },
)


class ToolChecker:
    """
    Checks external tool availability for the ingestion pipeline.

    Only ``fpcalc`` is consulted; without it every upload falls back to
    content-hash fingerprints.
    """

    def __init__(self, fpcalc_candidates: Optional[List[str]] = None):
        self.logger = logging.getLogger(__name__)
        self.system = platform.system().lower()
        self.fpcalc_candidates = fpcalc_candidates or default_fpcalc_candidates()

    def check_fpcalc(self) -> Dict[str, Optional[str]]:
        """
        Report where fpcalc was found, or how to install it.

        Returns:
            Dict with ``tool``, ``path`` and ``install_hint`` keys
        """
        path = locate_tool(self.fpcalc_candidates)
        hint = None
        if path is None:
            hint = FPCALC.install_instructions.get(self.system, FPCALC.install_instructions['linux'])
            self.logger.warning(f"{FPCALC.name} not found; install with: {hint}")
        else:
            self.logger.debug(f"{FPCALC.name} found at {path}")

        return {
            'tool': FPCALC.command,
            'path': path,
            'install_hint': hint,
        }
