"""
Audio Fingerprinting Module

Acoustic fingerprinting of uploaded bytes with Chromaprint/fpcalc, falling
back to a SHA-256 content hash when the tool is unavailable or fails.
"""

import hashlib
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.constants import FPCALC_DEFAULT_LENGTH, FPCALC_OUTPUT_KEY, FPCALC_TIMEOUT, HASH_FINGERPRINT_PREFIX
from ..core.models import Fingerprint, FingerprintKind
from ..utils.decorators import track_performance
from ..utils.tool_checker import default_fpcalc_candidates, locate_tool


class FingerprintError(Exception):
    """fpcalc did not produce a usable fingerprint"""
    pass


def hash_fingerprint(data: bytes) -> Fingerprint:
    """Content-hash fingerprint: equal only for byte-identical inputs"""
    digest = hashlib.sha256(data).hexdigest()
    return Fingerprint(f"{HASH_FINGERPRINT_PREFIX}{digest}", FingerprintKind.HASH)


def parse_fpcalc_output(stdout: str) -> Optional[str]:
    """Return the value of the ``FINGERPRINT=`` line, or None"""
    for line in stdout.splitlines():
        line = line.strip()
        if line.startswith(FPCALC_OUTPUT_KEY):
            value = line[len(FPCALC_OUTPUT_KEY):].strip()
            # Chromaprint fingerprints are base64-style ASCII
            if not value or not value.isascii():
                return None
            return value
    return None


class AudioFingerprinter:
    """
    Fingerprint generator for in-memory audio.

    The bytes are written to a private scratch file, ``fpcalc`` is run over it
    and the scratch file is removed again on every path. Any failure of the
    acoustic step degrades to a hash fingerprint; ``generate`` never raises.
    """

    def __init__(self,
                 fpcalc_candidates: Optional[List[str]] = None,
                 scratch_dir: Optional[Path] = None,
                 timeout: int = FPCALC_TIMEOUT,
                 fingerprint_length: int = FPCALC_DEFAULT_LENGTH):
        """
        Initialize the fingerprinter.

        Args:
            fpcalc_candidates: Ordered fpcalc locations; resolved once here
            scratch_dir: Directory for scratch files (system temp if None)
            timeout: fpcalc timeout in seconds
            fingerprint_length: Seconds of audio to analyze (max 120)
        """
        self.logger = logging.getLogger(__name__)
        self.timeout = timeout
        self.fingerprint_length = min(fingerprint_length, 120)

        self.scratch_dir = Path(scratch_dir) if scratch_dir else Path(tempfile.gettempdir())
        self.scratch_dir.mkdir(parents=True, exist_ok=True)

        candidates = fpcalc_candidates if fpcalc_candidates is not None else default_fpcalc_candidates()
        self.fpcalc_path = locate_tool(candidates)

        if self.fpcalc_path is None:
            self.logger.warning("fpcalc not found. Using SHA-256 fallback for fingerprinting.")
        else:
            self.logger.debug(f"Using fpcalc at {self.fpcalc_path}")

        self.stats = {
            'acoustic_success': 0,
            'hash_fallbacks': 0,
            'total_processed': 0,
        }

    @classmethod
    def from_config(cls, config) -> 'AudioFingerprinter':
        """Build from a ``FingerprintConfig``"""
        return cls(
            fpcalc_candidates=config.fpcalc_candidates,
            scratch_dir=config.resolved_scratch_dir(),
            timeout=config.timeout,
            fingerprint_length=config.fingerprint_length,
        )

    @property
    def fpcalc_available(self) -> bool:
        return self.fpcalc_path is not None

    @track_performance(threshold_ms=5000)
    def generate(self, data: bytes) -> Fingerprint:
        """
        Generate a fingerprint for audio bytes.

        Args:
            data: Raw audio file content

        Returns:
            Acoustic fingerprint, or a ``HASH:`` fingerprint on any failure
        """
        self.stats['total_processed'] += 1

        try:
            value = self._acoustic_fingerprint(data)
        except (FingerprintError, OSError, ValueError, subprocess.SubprocessError) as e:
            self.stats['hash_fallbacks'] += 1
            self.logger.warning(f"Acoustic fingerprinting failed, using SHA-256 hash: {e}")
            return hash_fingerprint(data)

        self.stats['acoustic_success'] += 1
        fingerprint = Fingerprint(value, FingerprintKind.ACOUSTIC)
        self.logger.info(f"Acoustic fingerprint generated: {fingerprint.short()}")
        return fingerprint

    def _acoustic_fingerprint(self, data: bytes) -> str:
        """Run fpcalc over a scratch copy of ``data``"""
        if self.fpcalc_path is None:
            raise FingerprintError("fpcalc is not installed")

        fd, scratch_path = tempfile.mkstemp(prefix="fp_", suffix=".audio", dir=str(self.scratch_dir))
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)

            cmd = [
                self.fpcalc_path,
                '-length', str(self.fingerprint_length),
                scratch_path,
            ]
            result = subprocess.run(cmd, capture_output=True, timeout=self.timeout,
                                    text=True, errors='replace')

            if result.returncode != 0:
                raise FingerprintError(
                    f"fpcalc exited with code {result.returncode}: {(result.stderr or '').strip()}"
                )

            value = parse_fpcalc_output(result.stdout or '')
            if not value:
                raise FingerprintError("fpcalc output contained no fingerprint")

            return value
        finally:
            try:
                os.unlink(scratch_path)
            except FileNotFoundError:
                pass

    def get_statistics(self) -> Dict[str, Any]:
        """Get fingerprinting statistics"""
        total = self.stats['total_processed']
        coverage = (self.stats['acoustic_success'] / total) * 100 if total else 0.0

        return {
            **self.stats,
            'acoustic_coverage': coverage,
            'fpcalc_available': self.fpcalc_available,
            'fpcalc_path': self.fpcalc_path,
        }
