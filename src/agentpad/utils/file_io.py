"""Text file IO used by :class:`~agentpad.services.workspace.LocalWorkspace`.

Documents are held in memory with ``\\n`` line endings and without a byte
order mark. :func:`decode_text` produces that form from raw bytes and reports
the on-disk :class:`TextFormat`; handing that format back to
:func:`write_text` restores the original encoding, BOM and line endings.
"""

from __future__ import annotations

import codecs
import locale
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "DEFAULT_FORMAT",
    "DecodedText",
    "TextFormat",
    "decode_text",
    "encode_text",
    "read_text",
    "write_text",
]

# UTF-32 marks must be checked before UTF-16: BOM_UTF32_LE starts with BOM_UTF16_LE.
_BOMS: tuple[tuple[bytes, str], ...] = (
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)
_BOM_FOR_ENCODING: dict[str, bytes] = {encoding: bom for bom, encoding in _BOMS}
_FALLBACK_ENCODING = "latin-1"
_NEWLINES = ("\n", "\r\n", "\r")


@dataclass(slots=True, frozen=True)
class TextFormat:
    """How a text file is laid out on disk."""

    encoding: str = "utf-8"
    had_bom: bool = False
    newline: str = "\n"


DEFAULT_FORMAT = TextFormat()


@dataclass(slots=True, frozen=True)
class DecodedText:
    """Decoded file body plus what was stripped from it."""

    text: str
    encoding: str
    had_bom: bool = False
    newline: str = "\n"

    @property
    def format(self) -> TextFormat:
        return TextFormat(encoding=self.encoding, had_bom=self.had_bom, newline=self.newline)


def decode_text(raw: bytes, *, encoding: str | None = None) -> DecodedText:
    """Decode ``raw`` into normalized text.

    With no explicit ``encoding`` a byte order mark wins; otherwise UTF-8, the
    locale's preferred encoding and finally latin-1 are tried in turn.
    """

    had_bom = False
    chosen = encoding
    if chosen is None:
        for bom, bom_encoding in _BOMS:
            if raw.startswith(bom):
                raw = raw[len(bom) :]
                chosen, had_bom = bom_encoding, True
                break
    if chosen is None:
        chosen = _sniff_encoding(raw)

    text = raw.decode(chosen)
    if text.startswith("\ufeff"):
        text, had_bom = text[1:], True
    newline = _dominant_newline(text)
    if "\r" in text:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
    return DecodedText(text=text, encoding=chosen, had_bom=had_bom, newline=newline)


def read_text(path: Path | str, *, encoding: str | None = None) -> str:
    return decode_text(Path(path).read_bytes(), encoding=encoding).text


def encode_text(content: str, text_format: TextFormat = DEFAULT_FORMAT) -> bytes:
    """Encode ``\\n``-normalized ``content`` in ``text_format``.

    Raises:
        UnicodeEncodeError: ``content`` has characters the encoding cannot represent.
        ValueError: ``text_format.newline`` is not ``\\n``, ``\\r\\n`` or ``\\r``.
    """

    if text_format.newline not in _NEWLINES:
        raise ValueError(f"Unsupported newline policy: {text_format.newline!r}")
    normalized = content.replace("\r\n", "\n").replace("\r", "\n")
    if text_format.newline != "\n":
        normalized = normalized.replace("\n", text_format.newline)
    payload = normalized.encode(text_format.encoding)
    if text_format.had_bom:
        payload = _BOM_FOR_ENCODING.get(codecs.lookup(text_format.encoding).name, b"") + payload
    return payload


def write_text(path: Path | str, content: str, *, text_format: TextFormat = DEFAULT_FORMAT) -> Path:
    """Write ``content`` next to ``path`` in a temp file, fsync it, then swap it in."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = encode_text(content, text_format)
    descriptor, tmp_name = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(descriptor, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return target


def _sniff_encoding(raw: bytes) -> str:
    candidates = ["utf-8", locale.getpreferredencoding(False) or "utf-8"]
    for candidate in dict.fromkeys(candidates):
        try:
            raw.decode(candidate)
        except (UnicodeDecodeError, LookupError):
            continue
        return candidate
    return _FALLBACK_ENCODING


def _dominant_newline(text: str) -> str:
    crlf = text.count("\r\n")
    lone_cr = text.count("\r") - crlf
    lone_lf = text.count("\n") - crlf
    counts = {"\r\n": crlf, "\r": lone_cr, "\n": lone_lf}
    best = max(counts, key=lambda key: counts[key])
    return best if counts[best] else "\n"
