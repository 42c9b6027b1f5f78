"""
tests/test_stat_repository.py

StatRepository against an in-memory SQLite database: persistence, error
translation, correction snapshots and bulk deletion.
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from statcounter.errors import DuplicateSubmissionError, NotFoundError, StorageError
from statcounter.models.region import Region
from statcounter.models.stat_daily import StatDaily
from statcounter.repositories.stats import StatRepository, delete_stats_older_than

TODAY = date(2026, 3, 10)


def _row(region: Region, name: str = "alice", day: date = TODAY, **values) -> StatDaily:
    return StatDaily(region_id=region.id, name=name, report_date=day, **values)


@pytest.fixture()
def repo(session: Session) -> StatRepository:
    return StatRepository(session)


class TestCreate:
    def test_persists_and_computes_differences(self, repo, regions) -> None:
        saved = repo.create(_row(regions["north"], seed_plan=10, seed_fact=12, peanut_plan=3, peanut_fact=1))
        assert saved.id is not None
        assert saved.seed_dif == 2
        assert saved.peanut_dif == -2
        assert saved.pumpkin_dif == 0

    def test_client_supplied_difference_is_overwritten(self, repo, regions) -> None:
        saved = repo.create(_row(regions["north"], seed_plan=1, seed_fact=1, seed_dif=99))
        assert saved.seed_dif == 0

    def test_duplicate_same_day_raises(self, repo, regions) -> None:
        repo.create(_row(regions["north"]))
        with pytest.raises(DuplicateSubmissionError):
            repo.create(_row(regions["north"], seed_plan=5))

    def test_same_name_other_day_or_region_is_fine(self, repo, regions) -> None:
        repo.create(_row(regions["north"]))
        repo.create(_row(regions["north"], day=TODAY - timedelta(days=1)))
        repo.create(_row(regions["south"]))

    def test_session_usable_after_duplicate(self, repo, regions, session) -> None:
        repo.create(_row(regions["north"]))
        with pytest.raises(DuplicateSubmissionError):
            repo.create(_row(regions["north"]))
        repo.create(_row(regions["north"], name="bob"))
        assert len(session.exec(select(StatDaily)).all()) == 2

    def test_storage_failure_is_translated(self, repo, regions, monkeypatch) -> None:
        def _boom() -> None:
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(repo.session, "commit", _boom)
        with pytest.raises(StorageError):
            repo.create(_row(regions["north"]))


class TestUpdate:
    def test_returns_old_values_and_updated_row(self, repo, regions) -> None:
        repo.create(_row(regions["north"], seed_plan=10, seed_fact=12, akb1=2))

        old, row = repo.update(regions["north"].id, "alice", TODAY, {"seed_fact": 20, "akb1": 5})

        assert (old.seed_plan, old.seed_fact, old.seed_dif, old.akb1) == (10, 12, 2, 2)
        assert (row.seed_plan, row.seed_fact, row.seed_dif, row.akb1) == (10, 20, 10, 5)

    def test_old_values_are_reread_from_the_database(self, repo, regions, engine) -> None:
        north = regions["north"].id
        repo.create(_row(regions["north"], seed_plan=10, seed_fact=12))
        repo.get_one(north, "alice", TODAY)

        # a concurrent correction lands after this session loaded the row
        with Session(engine) as other:
            stored = other.exec(select(StatDaily)).one()
            stored.seed_fact = 30
            other.add(stored)
            other.commit()

        old, row = repo.update(north, "alice", TODAY, {"seed_plan": 11})

        assert (old.seed_fact, old.seed_dif) == (30, 20)
        assert (row.seed_plan, row.seed_fact, row.seed_dif) == (11, 30, 19)

    def test_none_values_keep_stored_value(self, repo, regions) -> None:
        repo.create(_row(regions["north"], seed_plan=10, news=3))
        _, row = repo.update(regions["north"].id, "alice", TODAY, {"seed_plan": None, "news": 4})
        assert row.seed_plan == 10
        assert row.news == 4

    def test_missing_report_raises_not_found(self, repo, regions) -> None:
        with pytest.raises(NotFoundError):
            repo.update(regions["north"].id, "alice", TODAY, {"seed_plan": 1})

    def test_only_matches_given_day(self, repo, regions) -> None:
        repo.create(_row(regions["north"], day=TODAY - timedelta(days=1)))
        with pytest.raises(NotFoundError):
            repo.update(regions["north"].id, "alice", TODAY, {"seed_plan": 1})


class TestDeleteOlderThan:
    def test_deletes_strictly_before_cutoff(self, repo, regions, session) -> None:
        cutoff = TODAY - timedelta(days=3)
        for offset in (0, 2, 3, 4, 10):
            repo.create(_row(regions["north"], day=TODAY - timedelta(days=offset)))

        deleted = repo.delete_older_than(cutoff)

        assert deleted == 2
        remaining = sorted(r.report_date for r in session.exec(select(StatDaily)).all())
        assert remaining == [cutoff, TODAY - timedelta(days=2), TODAY]

    def test_nothing_to_delete(self, repo) -> None:
        assert repo.delete_older_than(TODAY) == 0

    def test_standalone_helper_uses_its_own_session(self, engine, repo, regions) -> None:
        repo.create(_row(regions["north"], day=TODAY - timedelta(days=5)))
        assert delete_stats_older_than(TODAY, bind=engine) == 1


class TestListing:
    def test_lists_region_reports_for_day(self, repo, regions) -> None:
        repo.create(_row(regions["north"], name="bob"))
        repo.create(_row(regions["north"], name="alice"))
        repo.create(_row(regions["south"], name="carol"))
        repo.create(_row(regions["north"], name="dave", day=TODAY - timedelta(days=1)))

        rows = repo.list_for_day(regions["north"].id, TODAY)
        assert [r.name for r in rows] == ["alice", "bob"]

    def test_filters_by_submitter(self, repo, regions) -> None:
        repo.create(_row(regions["north"], name="bob"))
        repo.create(_row(regions["north"], name="alice"))
        rows = repo.list_for_day(regions["north"].id, TODAY, name="bob")
        assert [r.name for r in rows] == ["bob"]

    def test_empty_listing_is_not_found(self, repo, regions) -> None:
        with pytest.raises(NotFoundError):
            repo.list_for_day(regions["north"].id, TODAY)
