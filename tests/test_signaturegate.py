"""
Tests for SignatureGate content detection.
"""

import dataclasses
import io
import pytest

from bastion.SignatureGate import (
    DEFAULT_SCAN_BYTES,
    EXECUTABLE_SIGNATURES,
    FILE_SIGNATURES,
    SIGNATURES_BY_TYPE,
    ClassificationResult,
    ExtensionMismatch,
    SignatureCategory,
    classify,
    classify_stream,
    detect_extension_mismatch,
    get_signature_by_type,
    get_signatures_by_category,
    get_signatures_by_extension,
    is_executable_content,
    is_executable_signature,
    match_signature,
)

from conftest import EXE_BYTES, PDF_BYTES

ZIP = b"PK\x03\x04"
OLE2 = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

# Buffers for formats that need more than their magic bytes
SAMPLES = {
    "DOCX": ZIP + b"\x14\x00\x06\x00[Content_Types].xml....word/document.xml",
    "XLSX": ZIP + b"\x14\x00\x06\x00[Content_Types].xml....xl/workbook.xml",
    "PPTX": ZIP + b"\x14\x00\x06\x00[Content_Types].xml....ppt/presentation.xml",
    "ODT": ZIP + b"\x00\x00mimetypeapplication/vnd.oasis.opendocument.text",
    "JAR": ZIP + b"\x14\x00\x08\x08META-INF/MANIFEST.MF",
    "WEBP": b"RIFF\x24\x00\x00\x00WEBPVP8 ",
    "AVI": b"RIFF\x24\x00\x00\x00AVI LIST",
    "WAV": b"RIFF\x24\x00\x00\x00WAVEfmt ",
    "SVG": b'<svg xmlns="http://www.w3.org/2000/svg" width="10"></svg>',
    "JS": b"const answer = 42;\nexport default answer;\n",
    "HTML": b"<!DOCTYPE html>\n<html><body>hi</body></html>\n",
    "JSON": b'{"name": "bastion", "version": 1}',
    "CSS": b"body { color: red; margin: 0; }\n",
    "XML": b'<?xml version="1.0" encoding="UTF-8"?>\n<root/>\n',
    "TS": b"type Id = string | number;\n",
    "PYTHON": b"def main():\n    return 0\n",
    "SHEBANG": b"#!/bin/sh\necho hello\n",
}

# Formats whose magic bytes resolve to an earlier declared format
AMBIGUOUS = {
    "XLS_OLD": "DOC_OLD",
    "PPT_OLD": "DOC_OLD",
    "MSI": "DOC_OLD",
    "JAVA_CLASS": "MACHO_FAT",
}


def _buffers_for(descriptor):
    """Yield one buffer per magic alternative (or the sample)."""
    if descriptor.type_id in SAMPLES:
        yield SAMPLES[descriptor.type_id]
        return

    for magic in descriptor.magic:
        buffer = bytearray(magic.offset + len(magic.sequence) + 16)
        buffer[magic.offset:magic.offset + len(magic.sequence)] = magic.sequence
        yield bytes(buffer)


class TestDatabase:
    """Tests for the signature table itself."""

    def test_type_ids_unique(self):
        """Every descriptor has its own type id."""
        ids = [d.type_id for d in FILE_SIGNATURES]
        assert len(ids) == len(set(ids))

    def test_declaration_order_is_stable(self):
        """The documented tie-breaks depend on this order."""
        ids = [d.type_id for d in FILE_SIGNATURES]

        assert ids.index("DOC_OLD") < ids.index("XLS_OLD") < ids.index("MSI")
        assert ids.index("MACHO_FAT") < ids.index("JAVA_CLASS")
        assert ids.index("DOCX") < ids.index("ZIP")
        assert ids.index("JAR") < ids.index("ZIP")
        assert ids.index("MOV") < ids.index("MP4")

    def test_indexes_are_read_only(self):
        """Lookup tables cannot be modified."""
        with pytest.raises(TypeError):
            SIGNATURES_BY_TYPE["NEW"] = FILE_SIGNATURES[0]

    def test_descriptors_are_frozen(self):
        """Descriptors cannot be modified."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            FILE_SIGNATURES[0].type_id = "OTHER"

    def test_extensions_are_lowercase_with_dot(self):
        """Extensions are stored normalized."""
        for descriptor in FILE_SIGNATURES:
            for ext in descriptor.extensions:
                assert ext.startswith(".")
                assert ext == ext.lower()

    def test_executable_set(self):
        """Shebang scripts count as executable content."""
        assert "SHEBANG" in EXECUTABLE_SIGNATURES
        assert "PDF" not in EXECUTABLE_SIGNATURES
        assert all(type_id in SIGNATURES_BY_TYPE for type_id in EXECUTABLE_SIGNATURES)


class TestMatchSignature:
    """Tests for match_signature()."""

    @pytest.mark.parametrize("descriptor", FILE_SIGNATURES, ids=lambda d: d.type_id)
    def test_round_trip(self, descriptor):
        """Each format's own bytes classify back to it (modulo documented ties)."""
        expected = AMBIGUOUS.get(descriptor.type_id, descriptor.type_id)

        for buffer in _buffers_for(descriptor):
            matched = match_signature(buffer)
            assert matched is not None
            assert matched.type_id == expected

    def test_empty_buffer(self):
        """An empty buffer matches nothing."""
        assert match_signature(b"") is None

    def test_unknown_content(self):
        """Random bytes match nothing."""
        assert match_signature(b"\x01\x02\x03\x04\x05\x06\x07\x08") is None

    def test_plain_zip_falls_through(self):
        """ZIP without container markers is a plain ZIP."""
        assert match_signature(ZIP + b"\x00" * 32).type_id == "ZIP"

    def test_cafebabe_tie_break(self):
        """CAFEBABE resolves to the Mach-O fat binary."""
        assert match_signature(b"\xca\xfe\xba\xbe\x00\x00\x00\x34").type_id == "MACHO_FAT"

    def test_ole2_tie_break(self):
        """OLE2 compound files resolve to the Word document."""
        assert match_signature(OLE2 + b"\x00" * 32).type_id == "DOC_OLD"

    def test_quicktime_before_mp4(self):
        """An 'ftypqt' box is a QuickTime movie."""
        assert match_signature(b"\x00\x00\x00\x14ftypqt  \x00\x00\x00\x00").type_id == "MOV"
        assert match_signature(b"\x00\x00\x00\x18ftypisom\x00\x00\x02\x00").type_id == "MP4"

    def test_svg_with_xml_declaration(self):
        """SVG wins over generic XML."""
        buffer = b'<?xml version="1.0"?>\n<svg xmlns="http://www.w3.org/2000/svg"/>'
        assert match_signature(buffer).type_id == "SVG"

    def test_max_read_bytes_bounds_scan(self):
        """Magic beyond the scan window is not seen."""
        tar = bytearray(600)
        tar[257:262] = b"ustar"

        assert match_signature(bytes(tar)).type_id == "TAR"
        assert match_signature(bytes(tar), max_read_bytes=200) is None

    def test_validators_disabled(self):
        """Without validators the first magic match wins and text formats are unknown."""
        assert match_signature(SAMPLES["XLSX"], run_validators=False).type_id == "DOCX"
        assert match_signature(SAMPLES["JS"], run_validators=False) is None

    def test_invalid_scan_size(self):
        """The scan window must be positive."""
        with pytest.raises(ValueError):
            match_signature(PDF_BYTES, max_read_bytes=0)

    def test_accepts_bytearray_and_memoryview(self):
        """Any bytes-like buffer works."""
        assert match_signature(bytearray(PDF_BYTES)).type_id == "PDF"
        assert match_signature(memoryview(PDF_BYTES)).type_id == "PDF"


class TestExtensionMismatch:
    """Tests for detect_extension_mismatch() and classify()."""

    def test_exe_disguised_as_pdf(self):
        """A PE executable named .pdf is a mismatch."""
        mismatch = detect_extension_mismatch("invoice.pdf", EXE_BYTES)

        assert isinstance(mismatch, ExtensionMismatch)
        assert mismatch.detected_type == "EXE"
        assert mismatch.expected_types == frozenset({"PDF"})
        assert mismatch.detected_type not in mismatch.expected_types

    def test_matching_content(self):
        """A real PDF named .pdf is fine."""
        assert detect_extension_mismatch("report.pdf", PDF_BYTES) is None

    def test_no_extension(self):
        """Files without an extension are never a mismatch."""
        assert detect_extension_mismatch("README", EXE_BYTES) is None

    def test_unregistered_extension(self):
        """Extensions unknown to the database are never a mismatch."""
        assert detect_extension_mismatch("notes.txt", EXE_BYTES) is None

    def test_unrecognized_content(self):
        """Unrecognized content is never a mismatch."""
        assert detect_extension_mismatch("photo.jpg", b"\x01\x02\x03\x04") is None

    def test_extension_case_ignored(self):
        """'.PDF' is treated like '.pdf'."""
        assert detect_extension_mismatch("INVOICE.PDF", EXE_BYTES).detected_type == "EXE"

    def test_shared_magic_is_not_a_mismatch(self):
        """An OLE2 .xls detected as DOC_OLD still fits its extension."""
        assert detect_extension_mismatch("budget.xls", OLE2 + b"\x00" * 32) is None
        assert detect_extension_mismatch("Main.class", b"\xca\xfe\xba\xbe\x00\x00\x00\x34") is None

    def test_plain_zip_named_docx(self):
        """A ZIP without Word parts named .docx is a mismatch."""
        mismatch = detect_extension_mismatch("letter.docx", ZIP + b"\x00" * 32)

        assert mismatch.detected_type == "ZIP"
        assert mismatch.expected_types == frozenset({"DOCX"})

    def test_classify_result(self):
        """classify() carries both the match and the mismatch."""
        result = classify(EXE_BYTES, path="/downloads/invoice.pdf")

        assert isinstance(result, ClassificationResult)
        assert result.type_id == "EXE"
        assert result.mismatch is not None
        assert result.to_dict()["mismatch"]["expected_types"] == ["PDF"]

    def test_classify_without_path(self):
        """No path means no mismatch check."""
        result = classify(EXE_BYTES)

        assert result.type_id == "EXE"
        assert result.mismatch is None

    def test_classify_empty(self):
        """An empty buffer classifies as nothing."""
        result = classify(b"", path="empty.pdf")

        assert result.matched_type is None
        assert result.mismatch is None


class TestClassifyStream:
    """Tests for classify_stream()."""

    def test_reads_bounded_prefix(self):
        """Only the scan window is consumed."""
        stream = io.BytesIO(PDF_BYTES + b"\x00" * 1000)

        prefix, result = classify_stream(stream, path="doc.pdf", max_read_bytes=16)

        assert prefix == PDF_BYTES[:16]
        assert stream.tell() == 16
        assert result.type_id == "PDF"

    def test_short_stream(self):
        """A stream shorter than the window is read completely."""
        prefix, result = classify_stream(io.BytesIO(EXE_BYTES))

        assert prefix == EXE_BYTES
        assert result.type_id == "EXE"
        assert len(prefix) < DEFAULT_SCAN_BYTES


class TestLookups:
    """Tests for lookup helpers."""

    def test_by_type(self):
        """Lookup by type id."""
        assert get_signature_by_type("PNG").mime_type == "image/png"
        assert get_signature_by_type("NOPE") is None

    def test_by_extension_ambiguous(self):
        """An extension may map to several formats."""
        ids = {d.type_id for d in get_signatures_by_extension("gif")}
        assert ids == {"GIF87", "GIF89"}
        assert get_signatures_by_extension(".GIF") == get_signatures_by_extension("gif")

    def test_by_extension_unknown(self):
        """Unknown or empty extensions give nothing."""
        assert get_signatures_by_extension(".nope") == ()
        assert get_signatures_by_extension("") == ()

    def test_by_category(self):
        """Lookup by category accepts the enum or its value."""
        executables = get_signatures_by_category(SignatureCategory.EXECUTABLE)

        assert {d.type_id for d in executables} >= {"EXE", "ELF", "MACHO_64"}
        assert get_signatures_by_category("Executable") == executables

    def test_is_executable(self):
        """Executable checks by type id and by content."""
        assert is_executable_signature("ELF") is True
        assert is_executable_signature("PDF") is False
        assert is_executable_signature(None) is False
        assert is_executable_content(EXE_BYTES) is True
        assert is_executable_content(b"#!/usr/bin/env bash\n") is True
        assert is_executable_content(PDF_BYTES) is False
