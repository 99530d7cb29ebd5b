from taxasync.arbiter import (
    accepted_identifiers,
    arbitrate,
    expand_candidates,
    filter_excluded,
    find_problem_duplicates,
    find_unmatched,
    group_problem_duplicates,
)
from taxasync.types.data_classes import Candidate, MatchRecord


def record(query, best=None, taxon_id=None, valid=None, author=None):
    if taxon_id is None:
        return MatchRecord.unmatched(query)
    candidate = Candidate(name=best or query, taxon_id=taxon_id, author=author, valid_name=valid)
    return MatchRecord.from_candidates(query, [candidate])


class TestExclusion:
    def test_excluded_identifier_removed_from_accepted_set(self):
        records = [record("Nitzschia", taxon_id="101", valid="Nitzschia"),
                   record("Skeletonema", taxon_id="201", valid="Skeletonema")]

        result = arbitrate(records, excluded_ids=frozenset({"101"}))

        assert "101" not in result.accepted_ids
        assert result.accepted_ids == frozenset({"201"})
        assert [r.taxon_id for r in result.excluded_records] == ["101"]

    def test_exclusion_does_not_hide_review_views(self):
        records = [record("Nitzschia", taxon_id="101", valid="Nitzschia"),
                   record("UnknownSpeciesXYZ")]

        result = arbitrate(records, excluded_ids=frozenset({"101"}))

        # Unmatched extraction looks at the unfiltered records
        assert [r.query_name for r in result.unmatched] == ["UnknownSpeciesXYZ"]

    def test_filter_keeps_unmatched_records(self):
        records = [record("a", taxon_id="1"), record("b")]
        assert filter_excluded(records, frozenset({"1"})) == [records[1]]

    def test_accepted_identifiers_are_distinct(self):
        records = [record("a", taxon_id="1"), record("b", taxon_id="1"), record("c")]
        assert accepted_identifiers(records) == frozenset({"1"})


class TestProblemDuplicates:
    def test_same_name_two_ids_same_valid_name_is_flagged(self):
        records = [
            record("Nitzschia", best="Nitzschia", taxon_id="101", valid="Nitzschia"),
            record("Nitzschia Hassall", best="Nitzschia", taxon_id="301", valid="Nitzschia"),
        ]

        duplicates = find_problem_duplicates(records)

        assert [r.taxon_id for r in duplicates] == ["101", "301"]

    def test_same_name_two_ids_different_valid_names_is_not_flagged(self):
        records = [
            record("Nitzschia", best="Nitzschia", taxon_id="101", valid="Nitzschia"),
            record("Nitzschia Grunow", best="Nitzschia", taxon_id="301", valid="Hantzschia"),
        ]

        assert find_problem_duplicates(records) == []

    def test_repeated_identifier_under_same_name_is_dropped(self):
        # Two catalog spellings of one registry name resolving to one id
        records = [
            record("Nitzschia", best="Nitzschia", taxon_id="101", valid="Nitzschia"),
            record("Nitzschia ", best="Nitzschia", taxon_id="101", valid="Nitzschia"),
        ]

        assert find_problem_duplicates(records) == []

    def test_unique_names_are_not_flagged(self):
        records = [
            record("Nitzschia", taxon_id="101", valid="Nitzschia"),
            record("Skeletonema", taxon_id="201", valid="Skeletonema"),
        ]

        assert find_problem_duplicates(records) == []

    def test_three_ids_one_converging_pair(self):
        records = [
            record("A", best="Navicula", taxon_id="1", valid="Navicula"),
            record("B", best="Navicula", taxon_id="2", valid="Navicula"),
            record("C", best="Navicula", taxon_id="3", valid="Haslea"),
        ]

        duplicates = find_problem_duplicates(records)

        assert [r.taxon_id for r in duplicates] == ["1", "2"]

    def test_groups_share_valid_name(self):
        records = [
            record("A", best="Navicula", taxon_id="1", valid="Navicula"),
            record("B", best="Navicula", taxon_id="2", valid="Navicula"),
        ]

        groups = group_problem_duplicates(find_problem_duplicates(records))

        assert len(groups) == 1
        assert groups[0].valid_name == "Navicula"
        assert groups[0].taxon_ids == frozenset({"1", "2"})


class TestCandidateExpansion:
    def test_ambiguous_name_expands_to_one_row_per_candidate(self):
        ambiguous = MatchRecord.from_candidates("Nitzschia", [
            Candidate(name="Nitzschia", taxon_id="101", valid_name="Nitzschia"),
            Candidate(name="Nitzschia", taxon_id="301", valid_name="Nitzschia"),
        ])

        rows = expand_candidates([ambiguous, MatchRecord.unmatched("X")])

        assert [r.taxon_id for r in rows] == ["101", "301", None]
        assert all(r.query_name in ("Nitzschia", "X") for r in rows)

    def test_best_match_only_by_default(self):
        ambiguous = MatchRecord.from_candidates("Nitzschia", [
            Candidate(name="Nitzschia", taxon_id="101", valid_name="Nitzschia"),
            Candidate(name="Nitzschia", taxon_id="301", valid_name="Nitzschia"),
        ])

        assert arbitrate([ambiguous]).accepted_ids == frozenset({"101"})
        assert arbitrate([ambiguous], accept_all_candidates=True).accepted_ids == frozenset({"101", "301"})


class TestScenario:
    def test_ambiguous_genus_and_unknown_name(self):
        records = [
            MatchRecord.from_candidates("Nitzschia", [
                Candidate(name="Nitzschia", taxon_id="101", author="Hassall", valid_name="Nitzschia"),
                Candidate(name="Nitzschia", taxon_id="301", author="Grunow", valid_name="Nitzschia"),
            ]),
            MatchRecord.from_candidates("Nitzschia sp.", [
                Candidate(name="Nitzschia sp.", taxon_id="101", valid_name="Nitzschia"),
            ]),
            MatchRecord.unmatched("UnknownSpeciesXYZ"),
        ]

        result = arbitrate(records)
        groups = group_problem_duplicates(result.problem_duplicates)

        assert len(groups) == 1
        assert groups[0].taxon_ids == frozenset({"101", "301"})
        assert [r.query_name for r in result.unmatched] == ["UnknownSpeciesXYZ"]
        assert find_unmatched(records) == [records[2]]
