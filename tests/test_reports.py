from taxasync.arbiter import arbitrate
from taxasync.reports import (
    DUPLICATE_REPORT_COLUMNS,
    build_genus_whitelist,
    build_review_reports,
    duplicate_report_rows,
    unmatched_report_rows,
)
from taxasync.types.data_classes import AssemblyResult, Candidate, MatchRecord, TaxonRecord


def test_whitelist_contains_sorted_distinct_genera():
    records = [
        TaxonRecord(taxon_id="201", scientific_name="Skeletonema", taxon_rank="Genus"),
        TaxonRecord(taxon_id="101", scientific_name="Nitzschia", taxon_rank="Genus"),
        TaxonRecord(taxon_id="102", scientific_name="Nitzschia acicularis", taxon_rank="Species"),
        TaxonRecord(taxon_id="301", scientific_name="Nitzschia", taxon_rank="Genus"),
    ]

    assert build_genus_whitelist(records) == [("Nitzschia", "genus"), ("Skeletonema", "genus")]


def test_whitelist_empty_without_genera():
    assert build_genus_whitelist([TaxonRecord(taxon_id="1", taxon_rank="Species")]) == []


def test_duplicate_rows_keep_report_columns():
    record = MatchRecord.from_candidates("Nitzschia", [
        Candidate(name="Nitzschia", taxon_id="101", author="Hassall", valid_name="Nitzschia", rank="Genus"),
    ])

    rows = duplicate_report_rows([record])

    assert list(rows[0]) == DUPLICATE_REPORT_COLUMNS
    assert rows[0]["author"] == "Hassall"


def test_unmatched_rows_carry_error():
    rows = unmatched_report_rows([MatchRecord.unmatched("Nitzschia", error="lookup timed out")])
    assert rows == [{"query_name": "Nitzschia", "error": "lookup timed out"}]


def test_review_reports_bundle():
    records = [
        MatchRecord.from_candidates("Nitzschia", [Candidate(name="Nitzschia", taxon_id="101")]),
        MatchRecord.unmatched("UnknownSpeciesXYZ"),
    ]
    assembly = AssemblyResult(records=(
        TaxonRecord(taxon_id="101", scientific_name="Nitzschia", taxon_rank="Genus"),
    ))

    reports = build_review_reports(assembly, arbitrate(records))

    assert reports.genus_whitelist == (("Nitzschia", "genus"),)
    assert reports.duplicate_rows == ()
    assert [r["query_name"] for r in reports.unmatched_rows] == ["UnknownSpeciesXYZ"]
