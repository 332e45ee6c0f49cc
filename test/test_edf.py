# test/test_edf.py
import pytest

from conftest import write_edf
from recheader.core import DecodeError, InconsistentHeader
from recheader.io.decoders.edf import read_edf_header
from recheader.io.normalize import normalize


def test_read_edf_header_fields(tmp_path):
    raw = read_edf_header(write_edf(tmp_path / "rec.edf"))
    assert raw.version.strip() == "0"
    assert raw.patient == "patient"
    assert raw.header_bytes == 256 * 4
    assert raw.num_records == 4
    assert raw.record_duration == 1.0
    assert [s.label for s in raw.signals] == ["Fp1", "Fp2", "Cz"]
    assert raw.signals[0].physical_dim == "uV"
    assert raw.signals[0].digital_max == 32767
    assert not raw.is_bdf


def test_bdf_uses_three_byte_samples(tmp_path):
    raw = read_edf_header(write_edf(tmp_path / "rec.bdf", bdf=True))
    assert raw.is_bdf
    assert raw.bytes_per_sample == 3


def test_normalized_edf(tmp_path):
    h = normalize(read_edf_header(write_edf(tmp_path / "rec.edf", duration=2)), "edf")
    assert h.sampling_rate == 128.0
    assert h.channel_count == 3
    assert h.samples_per_trial == 4 * 256
    assert h.trial_count == 1
    assert h.pre_trigger_samples == 0
    assert h.channel_unit == ("uV", "uV", "uV")
    assert h.format_tag == "edf"


def test_annotation_signals_are_not_channels(tmp_path):
    p = write_edf(
        tmp_path / "rec.edf",
        labels=("Fp1", "Fp2", "EDF Annotations"),
        spr_per_signal=(256, 256, 60),
    )
    h = normalize(read_edf_header(p))
    assert h.labels == ("Fp1", "Fp2")
    assert h.samples_per_trial == 4 * 256


def test_only_annotations_raises(tmp_path):
    p = write_edf(tmp_path / "rec.edf", labels=("EDF Annotations",))
    with pytest.raises(DecodeError):
        read_edf_header(p)


def test_different_rates_not_supported(tmp_path):
    p = write_edf(tmp_path / "rec.edf", spr_per_signal=(256, 256, 512))
    with pytest.raises(InconsistentHeader, match="different sampling rate"):
        read_edf_header(p)


def test_header_bytes_mismatch(tmp_path):
    p = write_edf(tmp_path / "rec.edf", header_bytes=512)
    with pytest.raises(InconsistentHeader):
        read_edf_header(p)


def test_unknown_record_count_is_taken_from_payload(tmp_path):
    p = write_edf(tmp_path / "rec.edf", num_records=5, num_records_field=-1)
    assert read_edf_header(p).num_records == 5


def test_truncated_file(tmp_path):
    p = tmp_path / "rec.edf"
    p.write_bytes(b"0       " + bytes(100))
    with pytest.raises(DecodeError):
        read_edf_header(p)


def test_non_numeric_field(tmp_path):
    p = write_edf(tmp_path / "rec.edf", duration="abc")
    with pytest.raises(DecodeError):
        read_edf_header(p)


def test_non_positive_duration(tmp_path):
    p = write_edf(tmp_path / "rec.edf", duration=0)
    with pytest.raises(DecodeError):
        read_edf_header(p)
