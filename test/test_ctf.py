# test/test_ctf.py
import pytest

from conftest import CTF_DEFAULT_CHANNELS, append_ctf_trials, build_res4, write_ctf_dataset
from recheader.core import ChannelType, DecodeError
from recheader.io.decoders.ctf import (
    decode_ctf,
    parse_res4,
    payload_bytes,
    refresh_trials,
    trials_in_payload,
)
from recheader.io.files import ctf_payload_files, dataset_files
from recheader.io.normalize import normalize
from recheader.io.options import ReadOptions


class TestParseRes4:
    """The big-endian res4 layout."""

    def test_general_info(self):
        raw = parse_res4(build_res4(no_samples=300, sample_rate=600.0, no_trials=5, pre_trig=60))
        assert raw.head == "MEG41RS"
        assert raw.app_name == "Acq 5.4.2"
        assert raw.no_samples == 300
        assert raw.no_channels == 5
        assert raw.sample_rate == 600.0
        assert raw.no_trials == 5
        assert raw.pre_trig_pts == 60
        assert raw.epoch_time == pytest.approx(0.5)
        assert raw.run_description == "test run"

    def test_channels_and_coils(self):
        raw = parse_res4(build_res4())
        assert [c.name for c in raw.channels] == [c[0] for c in CTF_DEFAULT_CHANNELS]
        grad = raw.channels[0]
        assert grad.sensor_type == 5
        assert len(grad.coils) == 2
        assert grad.coils[0].position == (1.0, 2.0, 3.0)
        assert grad.coils[1].orientation == (0.0, 0.0, -1.0)
        assert grad.coils[0].turns == 1
        assert raw.channels[3].coils == ()

    def test_not_a_res4(self):
        with pytest.raises(DecodeError):
            parse_res4(b"MEG41CP\x00" + bytes(4000))

    def test_truncated(self):
        with pytest.raises(DecodeError):
            parse_res4(build_res4()[:1500])


class TestNormalizedCtf:
    """Labels, types, units and geometry."""

    def test_labels_types_units(self):
        h = normalize(parse_res4(build_res4()), "ctf_ds")
        assert h.labels == ("MLC11", "MRC11", "BR1", "EEG001", "UPPT001")
        assert h.channel_type == (
            ChannelType.MEGGRAD,
            ChannelType.MEGGRAD,
            ChannelType.MEGREF,
            ChannelType.EEG,
            ChannelType.TRIGGER,
        )
        assert h.channel_unit == ("T", "T", "T", "V", "unknown")
        assert h.sampling_rate == 1200.0
        assert h.samples_per_trial == 600
        assert h.trial_count == 2

    def test_sensor_geometry(self):
        h = normalize(parse_res4(build_res4()))
        geo = h.sensor_geometry
        assert geo.labels == ("MLC11", "MRC11", "BR1")
        assert geo.n_coils == 5
        assert geo.coil_channel == (0, 0, 1, 1, 2)
        assert geo.unit == "cm"

    def test_meg_channel_without_coils_drops_geometry(self):
        channels = CTF_DEFAULT_CHANNELS[:1] + (("MRC12-1706", 5, []),)
        h = normalize(parse_res4(build_res4(channels=channels)))
        assert h.sensor_geometry is None
        assert any("sensor geometry" in w for w in h.warnings)

    def test_eog_on_eeg_input(self):
        channels = (("EOG001", 9, []), ("EEG002", 9, []))
        h = normalize(parse_res4(build_res4(channels=channels)))
        assert h.channel_type == (ChannelType.EOG, ChannelType.EEG)
        assert h.sensor_geometry is None


class TestPayload:
    """Trial counting from meg4 files."""

    def test_decode_attaches_payload(self, tmp_path):
        ds = write_ctf_dataset(tmp_path, trials_on_disk=2, extra_meg4_parts=1)
        raw = decode_ctf(dataset_files(ds, "ctf_ds"), ReadOptions())
        assert [p.name for p in raw.meg4_files] == ["sub01.meg4", "sub01.1_meg4"]
        assert raw.meg4_bytes == 3 * 5 * 4 * 600

    def test_decode_without_payload_warns(self, tmp_path, caplog):
        ds = write_ctf_dataset(tmp_path)
        (ds / "sub01.meg4").unlink()
        with caplog.at_level("WARNING"):
            raw = decode_ctf(dataset_files(ds, "ctf_ds"), ReadOptions())
        assert raw.meg4_files == ()
        assert "no .meg4" in caplog.text

    def test_trials_in_payload(self):
        assert trials_in_payload(5 * 4 * 600 * 3 + 7, 5, 600) == 3
        with pytest.raises(DecodeError):
            trials_in_payload(100, 0, 600)

    def test_payload_bytes_skips_identifiers(self, tmp_path):
        ds = write_ctf_dataset(tmp_path, trials_on_disk=1, extra_meg4_parts=2)
        files = ctf_payload_files(ds, "sub01")
        assert payload_bytes(files) == 3 * 5 * 4 * 600

    def test_refresh_recounts_growing_payload(self, tmp_path):
        ds = write_ctf_dataset(tmp_path, trials_on_disk=2, no_trials=2)
        files = dataset_files(ds, "ctf_ds")
        header = normalize(decode_ctf(files, ReadOptions()), "ctf_ds")
        assert refresh_trials(header, files) is header

        append_ctf_trials(ds, n_trials=2)
        refreshed = refresh_trials(header, files)
        assert refreshed.trial_count == 4
        assert header.trial_count == 2

    def test_empty_payload_gives_zero_trials(self, tmp_path):
        ds = write_ctf_dataset(tmp_path, trials_on_disk=0, no_trials=0)
        files = dataset_files(ds, "ctf_ds")
        header = normalize(decode_ctf(files, ReadOptions()))
        assert header.trial_count == 0
        assert refresh_trials(header, files).trial_count == 0

    def test_payload_count_wins_over_res4(self, tmp_path):
        ds = write_ctf_dataset(tmp_path, trials_on_disk=2, no_trials=3)
        raw = decode_ctf(dataset_files(ds, "ctf_ds"), ReadOptions())
        assert raw.no_trials == 3
        assert raw.payload_trials == 2
        assert normalize(raw).trial_count == 2

    def test_res4_count_without_payload(self, tmp_path):
        ds = write_ctf_dataset(tmp_path, no_trials=3)
        (ds / "sub01.meg4").unlink()
        raw = decode_ctf(dataset_files(ds, "ctf_ds"), ReadOptions())
        assert raw.payload_trials is None
        assert normalize(raw).trial_count == 3
