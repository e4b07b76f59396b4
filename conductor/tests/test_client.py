# ODFetch - Client Tests
# SPDX-License-Identifier: Apache-2.0

"""
End-to-end tests of the retrieval pipeline against an in-memory mirror.

Run with: pytest conductor/tests/
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from conftest import data_url
from odfetch import Client, ClientOptions, Request
from odfetch.errors import (
    InvalidRequest,
    LatestUnavailable,
    MissingRequiredKeyword,
    NoMatchingFields,
    PartialDataUnavailable,
    UnrecognizedKeyword,
)

FIELDS_240 = [
    {"param": "2t", "levtype": "sfc", "step": "240", "type": "fc"},
    {"param": "msl", "levtype": "sfc", "step": "240", "type": "fc"},
    {"param": "t", "levtype": "pl", "levelist": "500", "step": "240", "type": "fc"},
    {"param": "t", "levtype": "pl", "levelist": "1000", "step": "240", "type": "fc"},
]


@pytest.fixture
def client(fake_transport, fixed_clock):
    return Client(transport=fake_transport, clock=fixed_clock)


class TestSelectiveRetrieve:
    """Test retrieval of individual fields via the index"""

    def test_msl_step_240(self, client, publish, fake_transport, tmp_path):
        """Test fc/msl/240 infers oper and writes exactly the msl record"""
        bodies = publish(data_url(), FIELDS_240, gap=3)
        target = tmp_path / "msl.grib2"

        result = client.retrieve(date=20240110, time=0, type="fc", param="msl", step=240, target=str(target))

        assert target.read_bytes() == bodies[1]
        assert result.size_bytes == len(bodies[1])
        assert result.field_count == 1
        assert result.urls == [data_url()]
        assert result.datetime == datetime(2024, 1, 10, 0, tzinfo=timezone.utc)
        assert result.for_index == {"type": ["fc"], "step": ["240"], "param": ["msl"]}

        ranged = fake_transport.calls_of("range")
        assert len(ranged) == 1
        assert fake_transport.calls_of("fetch")[0][1].endswith(".index")

    def test_output_is_concatenation_in_index_order(self, client, publish, tmp_path):
        bodies = publish(data_url(), FIELDS_240)
        target = tmp_path / "out.grib2"

        client.retrieve(Request(date=20240110, time=0, param=["msl", "2t"], step=240), target=target)
        assert target.read_bytes() == bodies[0] + bodies[1]

    def test_preserve_request_order(self, fake_transport, fixed_clock, publish, tmp_path):
        bodies = publish(data_url(), FIELDS_240)
        client = Client(transport=fake_transport, clock=fixed_clock, preserve_request_order=True)
        target = tmp_path / "out.grib2"

        client.retrieve(date=20240110, time=0, param=["msl", "2t"], step=240, target=target)
        assert target.read_bytes() == bodies[1] + bodies[0]

    def test_adjacent_fields_fetched_in_one_range(self, client, publish, fake_transport, tmp_path):
        publish(data_url(), FIELDS_240)
        client.retrieve(date=20240110, time=0, param="t", levelist=[500, 1000], step=240,
                        target=tmp_path / "t.grib2")
        assert len(fake_transport.calls_of("range")) == 1

    def test_multiple_steps(self, client, publish, tmp_path):
        fields_0 = [dict(f, step="0") for f in FIELDS_240]
        bodies_0 = publish(data_url(step=0), fields_0)
        bodies_240 = publish(data_url(step=240), FIELDS_240)

        target = tmp_path / "out.grib2"
        result = client.retrieve_pairs(
            [("date", "20240110"), ("time", 0), ("step", [0, 240]), ("param", "msl")], target=target
        )

        assert target.read_bytes() == bodies_0[1] + bodies_240[1]
        assert result.field_count == 2
        assert len(result.urls) == 2

    def test_str_pairs_equivalent(self, client, publish, tmp_path):
        publish(data_url(step=12), [dict(FIELDS_240[1], step="12")])
        publish(data_url(step=24), [dict(FIELDS_240[1], step="24")])

        a = client.retrieve_request(
            Request.from_str_pairs([("date", "20240110"), ("time", "0"), ("step", "12,24"), ("param", "msl")]),
            target=tmp_path / "a.grib2",
        )
        b = client.retrieve(date=20240110, time=0, step=[12, 24], param="msl", target=tmp_path / "b.grib2")

        assert (tmp_path / "a.grib2").read_bytes() == (tmp_path / "b.grib2").read_bytes()
        assert a.urls == b.urls

    def test_no_matching_level(self, client, publish, tmp_path):
        """Test levelist=850 fails and leaves no output behind"""
        publish(data_url(), FIELDS_240)
        target = tmp_path / "t850.grib2"

        with pytest.raises(NoMatchingFields):
            client.retrieve(date=20240110, time=0, param="t", levelist=850, step=240, target=target)
        assert not target.exists()

    def test_partial_failure_keeps_existing_target(self, client, publish, fake_transport, tmp_path):
        publish(data_url(), FIELDS_240, gap=1)
        target = tmp_path / "out.grib2"
        target.write_bytes(b"keep me")

        fake_transport.files[data_url()] = fake_transport.files[data_url()][:10]
        with pytest.raises(PartialDataUnavailable):
            client.retrieve(date=20240110, time=0, param="msl", step=240, target=target)

        assert target.read_bytes() == b"keep me"


class TestWholeFile:
    """Test downloads of complete files"""

    def test_location_only_request(self, client, fake_transport, tmp_path):
        """Test a request without field keywords does one unranged fetch"""
        fake_transport.files[data_url()] = b"WHOLE FILE"
        target = tmp_path / "data.grib2"

        result = client.retrieve(date=20240110, time=0, step=240, target=target)

        assert target.read_bytes() == b"WHOLE FILE"
        assert result.field_count is None
        assert not result.selective
        assert fake_transport.calls == [("fetch", data_url(), None)]

    def test_download_ignores_field_keywords(self, client, fake_transport, tmp_path):
        fake_transport.files[data_url()] = b"WHOLE FILE"

        result = client.download(tmp_path / "x.grib2", date=20240110, time=0, step=240, param="msl")
        assert result.size_bytes == len(b"WHOLE FILE")
        assert fake_transport.calls_of("range") == []

    def test_download_request_concatenates_files(self, client, fake_transport, tmp_path):
        fake_transport.files[data_url(step=0)] = b"AAA"
        fake_transport.files[data_url(step=6)] = b"BB"
        target = tmp_path / "out.grib2"

        result = client.download_request(Request(date=20240110, time=0, step=[0, 6]), target=target)

        assert target.read_bytes() == b"AAABB"
        assert result.size_bytes == 5

    def test_tropical_tracks_download_whole(self, client, fake_transport, tmp_path):
        url = data_url(type_="tf").replace(".grib2", ".bufr")
        fake_transport.files[url] = b"BUFR"
        client.retrieve(date=20240110, time=0, type="tf", step=240, target=tmp_path / "tf.bufr")
        assert fake_transport.calls == [("fetch", url, None)]

    def test_default_target(self, client, fake_transport, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        fake_transport.files[data_url()] = b"X"

        result = client.retrieve(date=20240110, time=0, step=240)
        assert result.target_path == "data.grib2"
        assert (tmp_path / "data.grib2").read_bytes() == b"X"


class TestLatest:
    """Test date-less requests"""

    def test_probes_when_date_missing(self, client, publish, tmp_path):
        bodies = publish(data_url(date="20240110", hour=12), [dict(FIELDS_240[1])])

        result = client.retrieve(param="msl", step=240, target=tmp_path / "out.grib2")

        assert result.datetime == datetime(2024, 1, 10, 12, tzinfo=timezone.utc)
        assert (tmp_path / "out.grib2").read_bytes() == bodies[0]

    def test_latest(self, client, fake_transport):
        fake_transport.files[data_url(date="20240109", hour=0)] = b"x"
        assert client.latest(step=240) == datetime(2024, 1, 9, 0, tzinfo=timezone.utc)

    def test_latest_unavailable(self, fake_transport, fixed_clock):
        client = Client(transport=fake_transport, clock=fixed_clock, max_days_back=1)
        with pytest.raises(LatestUnavailable):
            client.retrieve(param="msl", step=240)


class TestClientConfiguration:
    """Test option handling and errors surfaced by the client"""

    def test_resolve_uses_per_request_source(self, client):
        locations = client.resolve(date=20240110, time=0, step=240, source="aws")
        assert locations[0].data_url == data_url(base="https://ecmwf-forecasts.s3.eu-central-1.amazonaws.com")

    def test_option_overrides(self, fake_transport):
        base = ClientOptions(source="google")
        client = Client(base, transport=fake_transport, model="aifs-single")

        assert client.options.source == "google"
        assert client.options.model == "aifs-single"

    def test_stream_required_without_inference(self, fake_transport, fixed_clock):
        client = Client(transport=fake_transport, clock=fixed_clock, infer_stream_keyword=False)
        with pytest.raises(MissingRequiredKeyword):
            client.retrieve(date=20240110, time=0, step=240)

    def test_unknown_keyword(self, client):
        with pytest.raises(UnrecognizedKeyword):
            client.retrieve(date=20240110, time=0, area="50/-10/40/10")

    def test_azure_fetches_sas_token_once(self, fake_transport):
        with patch("odfetch.client.fetch_sas_token", return_value="sig=abc") as fetch:
            client = Client(transport=fake_transport, source="azure")

        fetch.assert_called_once_with(fake_transport, "ecmwf", None)
        assert client.sas_token == "sig=abc"

    def test_sas_token_signs_injected_transport(self, fake_transport, fixed_clock, tmp_path):
        """Test the token reaches URLs of any transport, not only HTTPTransport"""
        fake_transport.files[data_url()] = b"X"
        with patch("odfetch.client.fetch_sas_token", return_value="sig=abc"):
            client = Client(transport=fake_transport, clock=fixed_clock, source="azure")

        client.resolve(date=20240110, time=0, step=240)
        client.retrieve(date=20240110, time=0, step=240, source="ecmwf", target=tmp_path / "x.grib2")

        assert fake_transport.sas_token == "sig=abc"
        assert fake_transport.calls == [("fetch", data_url() + "?sig=abc", None)]

    def test_request_not_mutated(self, client, fake_transport, tmp_path):
        fake_transport.files[data_url()] = b"X"
        request = Request(date=20240110, time=0, step=240)

        client.retrieve_request(request, target=tmp_path / "x.grib2")
        assert request.keys() == ["date", "time", "step"]


class TestInvalidRequests:
    """Test bad requests fail before any output is touched"""

    def test_reversed_date_range_keeps_target(self, client, fake_transport, tmp_path):
        """Test a date range ending before it starts never clobbers the target"""
        fake_transport.files[data_url()] = b"WHOLE FILE"
        target = tmp_path / "data.grib2"
        target.write_bytes(b"precious")

        with pytest.raises(InvalidRequest) as exc:
            client.retrieve(date="20240110/to/20240105", time=0, step=240, target=target)

        assert exc.value.stage == "request"
        assert target.read_bytes() == b"precious"
        assert fake_transport.calls == []

    def test_reversed_date_range_resolve(self, client):
        with pytest.raises(InvalidRequest):
            client.resolve(date="20240110/to/20240105", time=0, step=240)

    def test_blank_type_names_the_value(self, client):
        """Test a blank type is rejected as a bad value, not a missing stream"""
        with pytest.raises(InvalidRequest):
            client.resolve(date=20240110, time=0, type="  ", step=240)
