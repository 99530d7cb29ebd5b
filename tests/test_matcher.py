import pytest

from conftest import DIATOM_CANDIDATES, FakeRegistry
from taxasync.errors import ConfigurationError
from taxasync.matcher import TIMEOUT_ERROR, lookup_name, match_names


class RejectingRegistry(FakeRegistry):
    def lookup(self, name, return_all_candidates=True):
        raise ConfigurationError("Registry rejected the API key (HTTP 401)")


NAMES = ["Ceratoneis closterium", "Nitzschia", "Nitzschia acicularis", "Skeletonema marinoi", "UnknownSpeciesXYZ"]


class TestMatchNames:
    def test_one_record_per_name_in_order(self):
        records = match_names(NAMES, FakeRegistry(DIATOM_CANDIDATES), show_progress=False)

        assert [r.query_name for r in records] == NAMES
        assert [r.taxon_id for r in records] == ["104", "101", "102", "202", None]

    def test_concurrent_lookups_keep_input_order(self):
        records = match_names(NAMES, FakeRegistry(DIATOM_CANDIDATES), workers=4, show_progress=False)

        assert [r.query_name for r in records] == NAMES

    def test_failed_lookup_only_affects_its_name(self):
        registry = FakeRegistry(DIATOM_CANDIDATES, failing_names={"Nitzschia"})

        records = match_names(NAMES, registry, workers=2, show_progress=False)

        by_name = {r.query_name: r for r in records}
        assert not by_name["Nitzschia"].is_matched
        assert "service unavailable" in by_name["Nitzschia"].error
        assert by_name["Skeletonema marinoi"].taxon_id == "202"

    def test_batch_timeout_marks_outstanding_names_unmatched(self):
        registry = FakeRegistry(DIATOM_CANDIDATES, blocked_names={"Nitzschia"})
        try:
            records = match_names(NAMES, registry, workers=2, batch_timeout=0.5, show_progress=False)
        finally:
            registry.release.set()

        by_name = {r.query_name: r for r in records}
        assert by_name["Nitzschia"].error == TIMEOUT_ERROR
        assert by_name["Skeletonema marinoi"].taxon_id == "202"
        assert [r.query_name for r in records] == NAMES

    def test_rejected_credentials_propagate(self):
        with pytest.raises(ConfigurationError):
            match_names(["Nitzschia"], RejectingRegistry(), show_progress=False)

    def test_empty_input(self):
        assert match_names([], FakeRegistry()) == []


class TestLookupName:
    def test_best_match_only(self):
        candidates = {"Navicula": DIATOM_CANDIDATES["Nitzschia"] + DIATOM_CANDIDATES["Nitzschia acicularis"]}

        record = lookup_name(FakeRegistry(candidates), "Navicula", return_all_candidates=False)

        assert len(record.candidates) == 1
        assert record.taxon_id == "101"
