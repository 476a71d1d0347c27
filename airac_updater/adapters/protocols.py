"""Capability interfaces of the two document formats the pipeline consumes.

The orchestrator only depends on these protocols; ``XmlAixmParser`` and
``SctCodec`` are the default implementations and tests substitute fakes.
"""

from __future__ import annotations

from typing import Protocol

from airac_updater.adapters.aixm_parser import AixmDocument
from airac_updater.adapters.sct_codec import SectorFile


class AixmParser(Protocol):
    def parse(self, data: bytes) -> AixmDocument:
        """Decode one AIXM document. Raises ``AixmParseError``."""
        ...


class SectorCodec(Protocol):
    def parse(self, text: str) -> SectorFile:
        """Decode sector file text. Raises ``SectorParseError``."""
        ...

    def render(self, model: SectorFile) -> str:
        """Encode a sector file model back to text."""
        ...
