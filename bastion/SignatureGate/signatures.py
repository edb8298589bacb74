"""
File signature database for content-based type detection.

An immutable, ordered table of binary format descriptors. Matching walks
the table in declaration order and the first hit wins, so formats that
share magic bytes resolve to whichever is declared first:

- OLE2 compound files (d0 cf 11 e0): DOC_OLD before XLS_OLD, PPT_OLD, MSI
- ca fe ba be: MACHO_FAT before JAVA_CLASS
- ZIP containers: DOCX, XLSX, PPTX, ODT, JAR need their validator to pass,
  anything else with the ZIP magic falls through to ZIP
- ftyp boxes: MOV (ftypqt) is declared before the generic MP4

This order is part of the public contract. Append new formats; do not
reorder existing ones.
"""

import re
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Tuple

from .models import MagicBytes, SignatureCategory, SignatureDescriptor

DEFAULT_SCAN_BYTES = 64 * 1024

ZIP_MAGIC = b"PK\x03\x04"
OLE2_MAGIC = b"\xd0\xcf\x11\xe0"
RIFF_MAGIC = b"RIFF"


def _magic(*sequences: bytes, offset: int = 0) -> Tuple[MagicBytes, ...]:
    return tuple(MagicBytes(offset, sequence) for sequence in sequences)


def _exts(*extensions: str) -> FrozenSet[str]:
    return frozenset(ext.lower() for ext in extensions)


def _text(buffer: bytes, limit: int) -> str:
    return buffer[:limit].decode("utf-8", errors="ignore")


# =============================================================================
# Validators
# =============================================================================


def _ooxml(part: bytes):
    def validator(buffer: bytes) -> bool:
        return b"[Content_Types].xml" in buffer and part in buffer
    return validator


def _riff(fourcc: bytes):
    def validator(buffer: bytes) -> bool:
        return len(buffer) >= 12 and buffer[8:12] == fourcc
    return validator


def _is_odt(buffer: bytes) -> bool:
    return b"mimetypeapplication/vnd.oasis.opendocument.text" in buffer


def _is_jar(buffer: bytes) -> bool:
    return b"META-INF/MANIFEST.MF" in buffer


def _is_svg(buffer: bytes) -> bool:
    return "<svg" in _text(buffer, 1000).lower()


_JS_START = re.compile(
    r"^(const|let|var|import|export|function|class|async|await|//|/\*|\"use strict\"|'use strict')"
)


def _is_javascript(buffer: bytes) -> bool:
    content = _text(buffer, 500)
    return (
        content.startswith("#!/usr/bin/env node")
        or content.startswith("#!/usr/bin/node")
        or _JS_START.match(content.strip()) is not None
    )


def _is_html(buffer: bytes) -> bool:
    content = _text(buffer, 1000).lstrip().lower()
    return content.startswith("<!doctype") or content.startswith("<html")


def _is_json(buffer: bytes) -> bool:
    trimmed = _text(buffer, 100).strip()
    return (
        (trimmed.startswith("{") or trimmed.startswith("["))
        and (":" in trimmed or '"' in trimmed)
    )


_CSS_RULE = re.compile(r"\{[^}]*:[^}]*\}")


def _is_css(buffer: bytes) -> bool:
    content = _text(buffer, 500)
    return _CSS_RULE.search(content) is not None and "<" not in content


def _is_xml(buffer: bytes) -> bool:
    return _text(buffer, 500).lstrip().startswith("<?xml")


_TS_HINTS = re.compile(
    r":\s*(string|number|boolean|any|void|unknown)\b"
    r"|^\s*(export\s+)?(interface|type)\s+\w+",
    re.MULTILINE,
)


def _is_typescript(buffer: bytes) -> bool:
    content = _text(buffer, 500)
    return _TS_HINTS.search(content) is not None or ": React." in content


_PY_START = re.compile(r"^(import|from|def|class|if __name__)\b")


def _is_python(buffer: bytes) -> bool:
    content = _text(buffer, 500)
    return (
        content.startswith("#!/usr/bin/env python")
        or content.startswith("#!/usr/bin/python")
        or _PY_START.match(content.strip()) is not None
    )


# =============================================================================
# Documents
# =============================================================================

PDF = SignatureDescriptor(
    type_id="PDF",
    category=SignatureCategory.DOCUMENT,
    magic=_magic(b"%PDF"),
    extensions=_exts(".pdf"),
    mime_type="application/pdf",
    description="Adobe Portable Document Format",
)

DOCX = SignatureDescriptor(
    type_id="DOCX",
    category=SignatureCategory.DOCUMENT,
    magic=_magic(ZIP_MAGIC),
    extensions=_exts(".docx", ".docm"),
    mime_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    description="Microsoft Word Open XML Document (ZIP-based)",
    validator=_ooxml(b"word/"),
)

XLSX = SignatureDescriptor(
    type_id="XLSX",
    category=SignatureCategory.DOCUMENT,
    magic=_magic(ZIP_MAGIC),
    extensions=_exts(".xlsx", ".xlsm"),
    mime_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    description="Microsoft Excel Open XML Spreadsheet (ZIP-based)",
    validator=_ooxml(b"xl/"),
)

PPTX = SignatureDescriptor(
    type_id="PPTX",
    category=SignatureCategory.DOCUMENT,
    magic=_magic(ZIP_MAGIC),
    extensions=_exts(".pptx", ".pptm"),
    mime_type="application/vnd.openxmlformats-officedocument.presentationml.presentation",
    description="Microsoft PowerPoint Open XML Presentation (ZIP-based)",
    validator=_ooxml(b"ppt/"),
)

DOC_OLD = SignatureDescriptor(
    type_id="DOC_OLD",
    category=SignatureCategory.DOCUMENT,
    magic=_magic(OLE2_MAGIC),
    extensions=_exts(".doc"),
    mime_type="application/msword",
    description="Microsoft Word 97-2003 Document (OLE2)",
)

XLS_OLD = SignatureDescriptor(
    type_id="XLS_OLD",
    category=SignatureCategory.DOCUMENT,
    magic=_magic(OLE2_MAGIC),
    extensions=_exts(".xls"),
    mime_type="application/vnd.ms-excel",
    description="Microsoft Excel 97-2003 Spreadsheet (OLE2)",
)

PPT_OLD = SignatureDescriptor(
    type_id="PPT_OLD",
    category=SignatureCategory.DOCUMENT,
    magic=_magic(OLE2_MAGIC),
    extensions=_exts(".ppt"),
    mime_type="application/vnd.ms-powerpoint",
    description="Microsoft PowerPoint 97-2003 Presentation (OLE2)",
)

RTF = SignatureDescriptor(
    type_id="RTF",
    category=SignatureCategory.DOCUMENT,
    magic=_magic(b"{\\rtf1"),
    extensions=_exts(".rtf"),
    mime_type="application/rtf",
    description="Rich Text Format",
)

ODT = SignatureDescriptor(
    type_id="ODT",
    category=SignatureCategory.DOCUMENT,
    magic=_magic(ZIP_MAGIC),
    extensions=_exts(".odt"),
    mime_type="application/vnd.oasis.opendocument.text",
    description="OpenDocument Text",
    validator=_is_odt,
)

# =============================================================================
# Images
# =============================================================================

JPEG = SignatureDescriptor(
    type_id="JPEG",
    category=SignatureCategory.IMAGE,
    magic=_magic(
        b"\xff\xd8\xff\xe0",  # JFIF
        b"\xff\xd8\xff\xe1",  # Exif
        b"\xff\xd8\xff\xe8",  # SPIFF
        b"\xff\xd8\xff\xdb",  # raw
        b"\xff\xd8\xff\xee",  # Samsung
    ),
    extensions=_exts(".jpg", ".jpeg", ".jpe"),
    mime_type="image/jpeg",
    description="JPEG Image",
)

PNG = SignatureDescriptor(
    type_id="PNG",
    category=SignatureCategory.IMAGE,
    magic=_magic(b"\x89PNG\r\n\x1a\n"),
    extensions=_exts(".png"),
    mime_type="image/png",
    description="Portable Network Graphics",
)

GIF87 = SignatureDescriptor(
    type_id="GIF87",
    category=SignatureCategory.IMAGE,
    magic=_magic(b"GIF87a"),
    extensions=_exts(".gif"),
    mime_type="image/gif",
    description="Graphics Interchange Format (87a)",
)

GIF89 = SignatureDescriptor(
    type_id="GIF89",
    category=SignatureCategory.IMAGE,
    magic=_magic(b"GIF89a"),
    extensions=_exts(".gif"),
    mime_type="image/gif",
    description="Graphics Interchange Format (89a)",
)

BMP = SignatureDescriptor(
    type_id="BMP",
    category=SignatureCategory.IMAGE,
    magic=_magic(b"BM"),
    extensions=_exts(".bmp", ".dib"),
    mime_type="image/bmp",
    description="Bitmap Image File",
)

WEBP = SignatureDescriptor(
    type_id="WEBP",
    category=SignatureCategory.IMAGE,
    magic=_magic(RIFF_MAGIC),
    extensions=_exts(".webp"),
    mime_type="image/webp",
    description="WebP Image",
    validator=_riff(b"WEBP"),
)

TIFF_LE = SignatureDescriptor(
    type_id="TIFF_LE",
    category=SignatureCategory.IMAGE,
    magic=_magic(b"II*\x00"),
    extensions=_exts(".tif", ".tiff"),
    mime_type="image/tiff",
    description="Tagged Image File Format (Little Endian)",
)

TIFF_BE = SignatureDescriptor(
    type_id="TIFF_BE",
    category=SignatureCategory.IMAGE,
    magic=_magic(b"MM\x00*"),
    extensions=_exts(".tif", ".tiff"),
    mime_type="image/tiff",
    description="Tagged Image File Format (Big Endian)",
)

ICO = SignatureDescriptor(
    type_id="ICO",
    category=SignatureCategory.IMAGE,
    magic=_magic(b"\x00\x00\x01\x00"),
    extensions=_exts(".ico"),
    mime_type="image/x-icon",
    description="Windows Icon",
)

SVG = SignatureDescriptor(
    type_id="SVG",
    category=SignatureCategory.IMAGE,
    magic=(),
    extensions=_exts(".svg"),
    mime_type="image/svg+xml",
    description="Scalable Vector Graphics",
    validator=_is_svg,
)

# =============================================================================
# Executables (security critical)
# =============================================================================

EXE = SignatureDescriptor(
    type_id="EXE",
    category=SignatureCategory.EXECUTABLE,
    magic=_magic(b"MZ"),
    extensions=_exts(".exe", ".dll", ".ocx", ".sys", ".scr"),
    mime_type="application/x-msdownload",
    description="Windows/DOS Executable (PE format)",
)

ELF = SignatureDescriptor(
    type_id="ELF",
    category=SignatureCategory.EXECUTABLE,
    magic=_magic(b"\x7fELF"),
    extensions=_exts(".elf", ".bin"),
    mime_type="application/x-executable",
    description="Executable and Linkable Format (Unix/Linux)",
)

MACHO_32 = SignatureDescriptor(
    type_id="MACHO_32",
    category=SignatureCategory.EXECUTABLE,
    magic=_magic(b"\xfe\xed\xfa\xce"),
    extensions=_exts(".o", ".dylib"),
    mime_type="application/x-mach-binary",
    description="Mach-O 32-bit (macOS/iOS)",
)

MACHO_64 = SignatureDescriptor(
    type_id="MACHO_64",
    category=SignatureCategory.EXECUTABLE,
    magic=_magic(b"\xfe\xed\xfa\xcf"),
    extensions=_exts(".o", ".dylib"),
    mime_type="application/x-mach-binary",
    description="Mach-O 64-bit (macOS/iOS)",
)

MACHO_FAT = SignatureDescriptor(
    type_id="MACHO_FAT",
    category=SignatureCategory.EXECUTABLE,
    magic=_magic(b"\xca\xfe\xba\xbe", b"\xca\xfe\xba\xbf"),
    extensions=_exts(".o", ".dylib"),
    mime_type="application/x-mach-binary",
    description="Mach-O Universal/FAT Binary (macOS/iOS)",
)

MSI = SignatureDescriptor(
    type_id="MSI",
    category=SignatureCategory.EXECUTABLE,
    magic=_magic(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"),
    extensions=_exts(".msi"),
    mime_type="application/x-msi",
    description="Microsoft Windows Installer Package",
)

JAVA_CLASS = SignatureDescriptor(
    type_id="JAVA_CLASS",
    category=SignatureCategory.EXECUTABLE,
    magic=_magic(b"\xca\xfe\xba\xbe"),
    extensions=_exts(".class"),
    mime_type="application/java-vm",
    description="Java Class File",
)

JAR = SignatureDescriptor(
    type_id="JAR",
    category=SignatureCategory.EXECUTABLE,
    magic=_magic(ZIP_MAGIC),
    extensions=_exts(".jar"),
    mime_type="application/java-archive",
    description="Java Archive (ZIP-based)",
    validator=_is_jar,
)

# =============================================================================
# Archives
# =============================================================================

ZIP = SignatureDescriptor(
    type_id="ZIP",
    category=SignatureCategory.ARCHIVE,
    magic=_magic(ZIP_MAGIC),
    extensions=_exts(".zip"),
    mime_type="application/zip",
    description="ZIP Archive",
)

RAR = SignatureDescriptor(
    type_id="RAR",
    category=SignatureCategory.ARCHIVE,
    magic=_magic(b"Rar!\x1a\x07\x00", b"Rar!\x1a\x07\x01\x00"),
    extensions=_exts(".rar"),
    mime_type="application/x-rar-compressed",
    description="Roshal Archive",
)

SEVENZ = SignatureDescriptor(
    type_id="7Z",
    category=SignatureCategory.ARCHIVE,
    magic=_magic(b"7z\xbc\xaf\x27\x1c"),
    extensions=_exts(".7z"),
    mime_type="application/x-7z-compressed",
    description="7-Zip Archive",
)

TAR = SignatureDescriptor(
    type_id="TAR",
    category=SignatureCategory.ARCHIVE,
    magic=_magic(b"ustar", offset=257),
    extensions=_exts(".tar"),
    mime_type="application/x-tar",
    description="Tape Archive",
)

GZIP = SignatureDescriptor(
    type_id="GZIP",
    category=SignatureCategory.ARCHIVE,
    magic=_magic(b"\x1f\x8b"),
    extensions=_exts(".gz", ".gzip"),
    mime_type="application/gzip",
    description="GZIP Compressed",
)

BZIP2 = SignatureDescriptor(
    type_id="BZIP2",
    category=SignatureCategory.ARCHIVE,
    magic=_magic(b"BZh"),
    extensions=_exts(".bz2"),
    mime_type="application/x-bzip2",
    description="Bzip2 Compressed",
)

XZ = SignatureDescriptor(
    type_id="XZ",
    category=SignatureCategory.ARCHIVE,
    magic=_magic(b"\xfd7zXZ\x00\x00"),
    extensions=_exts(".xz"),
    mime_type="application/x-xz",
    description="XZ Compressed",
)

# =============================================================================
# Audio / video
# =============================================================================

MP3_ID3 = SignatureDescriptor(
    type_id="MP3_ID3",
    category=SignatureCategory.AUDIO,
    magic=_magic(b"ID3"),
    extensions=_exts(".mp3"),
    mime_type="audio/mpeg",
    description="MP3 Audio with ID3 tag",
)

MP3_RAW = SignatureDescriptor(
    type_id="MP3_RAW",
    category=SignatureCategory.AUDIO,
    magic=_magic(
        b"\xff\xfb",  # MPEG-1 Layer 3
        b"\xff\xf3",  # MPEG-1 Layer 3, CRC
        b"\xff\xfa",  # MPEG-2 Layer 3
        b"\xff\xf2",  # MPEG-2 Layer 3, CRC
    ),
    extensions=_exts(".mp3"),
    mime_type="audio/mpeg",
    description="MP3 Audio (raw frames)",
)

MOV = SignatureDescriptor(
    type_id="MOV",
    category=SignatureCategory.VIDEO,
    magic=_magic(b"ftypqt  ", offset=4),
    extensions=_exts(".mov", ".qt"),
    mime_type="video/quicktime",
    description="QuickTime Movie",
)

MP4 = SignatureDescriptor(
    type_id="MP4",
    category=SignatureCategory.VIDEO,
    magic=_magic(b"ftyp", offset=4),
    extensions=_exts(".mp4", ".m4v", ".m4a"),
    mime_type="video/mp4",
    description="MPEG-4 Part 14",
)

AVI = SignatureDescriptor(
    type_id="AVI",
    category=SignatureCategory.VIDEO,
    magic=_magic(RIFF_MAGIC),
    extensions=_exts(".avi"),
    mime_type="video/x-msvideo",
    description="Audio Video Interleave",
    validator=_riff(b"AVI "),
)

MKV = SignatureDescriptor(
    type_id="MKV",
    category=SignatureCategory.VIDEO,
    magic=_magic(b"\x1a\x45\xdf\xa3"),
    extensions=_exts(".mkv", ".mka", ".webm"),
    mime_type="video/x-matroska",
    description="Matroska Video",
)

FLV = SignatureDescriptor(
    type_id="FLV",
    category=SignatureCategory.VIDEO,
    magic=_magic(b"FLV"),
    extensions=_exts(".flv"),
    mime_type="video/x-flv",
    description="Flash Video",
)

WAV = SignatureDescriptor(
    type_id="WAV",
    category=SignatureCategory.AUDIO,
    magic=_magic(RIFF_MAGIC),
    extensions=_exts(".wav"),
    mime_type="audio/wav",
    description="Waveform Audio File Format",
    validator=_riff(b"WAVE"),
)

FLAC = SignatureDescriptor(
    type_id="FLAC",
    category=SignatureCategory.AUDIO,
    magic=_magic(b"fLaC"),
    extensions=_exts(".flac"),
    mime_type="audio/flac",
    description="Free Lossless Audio Codec",
)

OGG = SignatureDescriptor(
    type_id="OGG",
    category=SignatureCategory.AUDIO,
    magic=_magic(b"OggS"),
    extensions=_exts(".ogg", ".oga", ".ogv"),
    mime_type="audio/ogg",
    description="Ogg Container Format",
)

# =============================================================================
# Code
# =============================================================================

JS = SignatureDescriptor(
    type_id="JS",
    category=SignatureCategory.CODE,
    magic=(),
    extensions=_exts(".js", ".mjs", ".cjs"),
    mime_type="application/javascript",
    description="JavaScript Source File",
    validator=_is_javascript,
)

HTML = SignatureDescriptor(
    type_id="HTML",
    category=SignatureCategory.CODE,
    magic=(),
    extensions=_exts(".html", ".htm"),
    mime_type="text/html",
    description="HyperText Markup Language",
    validator=_is_html,
)

JSON = SignatureDescriptor(
    type_id="JSON",
    category=SignatureCategory.CODE,
    magic=_magic(b"{", b"["),
    extensions=_exts(".json"),
    mime_type="application/json",
    description="JavaScript Object Notation",
    validator=_is_json,
)

CSS = SignatureDescriptor(
    type_id="CSS",
    category=SignatureCategory.CODE,
    magic=(),
    extensions=_exts(".css"),
    mime_type="text/css",
    description="Cascading Style Sheets",
    validator=_is_css,
)

XML = SignatureDescriptor(
    type_id="XML",
    category=SignatureCategory.CODE,
    magic=(),
    extensions=_exts(".xml"),
    mime_type="application/xml",
    description="eXtensible Markup Language",
    validator=_is_xml,
)

TS = SignatureDescriptor(
    type_id="TS",
    category=SignatureCategory.CODE,
    magic=(),
    extensions=_exts(".ts", ".tsx"),
    mime_type="application/typescript",
    description="TypeScript Source File",
    validator=_is_typescript,
)

PYTHON = SignatureDescriptor(
    type_id="PYTHON",
    category=SignatureCategory.CODE,
    magic=(),
    extensions=_exts(".py"),
    mime_type="text/x-python",
    description="Python Source File",
    validator=_is_python,
)

SHEBANG = SignatureDescriptor(
    type_id="SHEBANG",
    category=SignatureCategory.CODE,
    magic=_magic(b"#!"),
    extensions=_exts(".sh", ".bash", ".zsh"),
    mime_type="text/x-script",
    description="Shebang Script File",
)

# =============================================================================
# Main database
# =============================================================================

FILE_SIGNATURES: Tuple[SignatureDescriptor, ...] = (
    # Documents
    PDF, DOCX, XLSX, PPTX, DOC_OLD, XLS_OLD, PPT_OLD, RTF, ODT,
    # Images
    JPEG, PNG, GIF87, GIF89, BMP, WEBP, TIFF_LE, TIFF_BE, ICO, SVG,
    # Executables
    EXE, ELF, MACHO_32, MACHO_64, MACHO_FAT, MSI, JAVA_CLASS, JAR,
    # Archives
    ZIP, RAR, SEVENZ, TAR, GZIP, BZIP2, XZ,
    # Audio/Video
    MP3_ID3, MP3_RAW, MOV, MP4, AVI, MKV, FLV, WAV, FLAC, OGG,
    # Code
    JS, HTML, JSON, CSS, XML, TS, PYTHON, SHEBANG,
)

# Types that represent potentially executable content
EXECUTABLE_SIGNATURES: FrozenSet[str] = frozenset({
    "EXE",
    "ELF",
    "MACHO_32",
    "MACHO_64",
    "MACHO_FAT",
    "MSI",
    "JAVA_CLASS",
    "JAR",
    "SHEBANG",
})


def _index_by_type() -> Mapping[str, SignatureDescriptor]:
    index: Dict[str, SignatureDescriptor] = {}
    for descriptor in FILE_SIGNATURES:
        if descriptor.type_id in index:
            raise ValueError(f"Duplicate signature type: {descriptor.type_id}")
        index[descriptor.type_id] = descriptor
    return MappingProxyType(index)


def _index_by_extension() -> Mapping[str, Tuple[SignatureDescriptor, ...]]:
    index: Dict[str, List[SignatureDescriptor]] = {}
    for descriptor in FILE_SIGNATURES:
        for ext in descriptor.extensions:
            index.setdefault(ext, []).append(descriptor)
    return MappingProxyType({ext: tuple(found) for ext, found in index.items()})


SIGNATURES_BY_TYPE = _index_by_type()
SIGNATURES_BY_EXTENSION = _index_by_extension()
