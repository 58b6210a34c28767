"""Tests for the MLDA data loader."""

from __future__ import annotations

import httpx
import pytest

from shared.data.mlda import MLDALoader, load_mlda
from tests.fixtures.synthetic_dgp import make_age_cell_frame


@pytest.fixture
def cells():
    return make_age_cell_frame()


@pytest.fixture
def csv_path(tmp_path, cells):
    path = tmp_path / "mlda.csv"
    # Shuffled on disk; the loader sorts by age
    cells.sample(frac=1.0, random_state=0).to_csv(path, index=False)
    return path


class TestMLDALoader:
    def test_fetch_sorts_by_running_variable(self, csv_path):
        df = MLDALoader(path=csv_path, url="").fetch()
        assert len(df) == 48
        assert df["agecell"].is_monotonic_increasing

    def test_fetch_records_metadata(self, csv_path):
        loader = MLDALoader(path=csv_path, url="")
        loader.fetch()
        assert loader.metadata[0].row_count == 48
        assert loader.metadata[0].source_name == "mlda"

    def test_available_outcomes_skip_fitted_columns(self, csv_path):
        loader = MLDALoader(path=csv_path, url="")
        assert loader.available_outcomes() == ["all", "mva", "suicide", "drugs"]

    def test_observations_drop_missing(self, csv_path):
        obs = MLDALoader(path=csv_path, url="").observations("drugs")
        assert len(obs) == 47
        assert list(obs.assignment) == sorted(obs.assignment)

    def test_unknown_outcome(self, csv_path):
        with pytest.raises(ValueError, match="homicide"):
            MLDALoader(path=csv_path, url="").observations("homicide")

    def test_missing_running_variable(self, csv_path):
        loader = MLDALoader(path=csv_path, url="", running_variable="age")
        with pytest.raises(ValueError):
            loader.fetch()

    def test_missing_file_without_url(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            MLDALoader(path=tmp_path / "absent.csv", url="").fetch()

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "mlda.txt"
        path.write_text("agecell,all\n20.5,90\n")
        with pytest.raises(ValueError):
            MLDALoader(path=path, url="").fetch()

    def test_download_when_missing(self, tmp_path, cells):
        body = cells.to_csv(index=False).encode()
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, content=body)

        destination = tmp_path / "raw" / "mlda.csv"
        loader = MLDALoader(path=destination, url="https://example.org/mlda.csv")
        loader._client = httpx.Client(transport=httpx.MockTransport(handler))

        df = loader.fetch()
        loader.close()

        assert requested == ["https://example.org/mlda.csv"]
        assert destination.exists()
        assert len(df) == 48

    def test_download_error_propagates(self, tmp_path):
        loader = MLDALoader(path=tmp_path / "mlda.csv", url="https://example.org/missing.csv")
        loader._client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(404))
        )
        with pytest.raises(httpx.HTTPStatusError):
            loader.fetch()

    def test_load_mlda(self, csv_path):
        df = load_mlda(csv_path)
        assert "agecell" in df.columns


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
