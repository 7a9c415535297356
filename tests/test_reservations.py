"""Tests for atomic slot reservation and the database booking reader."""

from datetime import date

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from clinic import models
from clinic.database import enable_sqlite_fk
from clinic.models import BookingSource
from clinic.reservations import ScheduleConflictError, SlotUnavailableError, reserve_slot
from clinic.slots import DatabaseBookingReader, SlotAllocator

DAY = date(2030, 3, 4)


def add_booking(db, model=models.Appointment, time="11:00 - 11:30", status="confirmed", provider_id=None, **fields):
    fields.setdefault("duration", 30)
    booking = model(
        date=fields.pop("date", DAY),
        time=time,
        status=status,
        provider_id=provider_id,
        patient_name="Seeded Patient",
        treatment="Cleaning (LINIS)",
        treatment_option="Cleaning (LINIS) - Mild to Average Deposit (Tartar)",
        price=650,
        **fields,
    )
    db.add(booking)
    db.commit()
    return booking


class TestDatabaseBookingReader:
    """Tests for reading booking snapshots from both tables."""

    def test_walk_ins_filtered_by_provider(self, db, dentist, other_dentist):
        add_booking(db, provider_id=dentist.id)
        add_booking(db, time="12:00 - 12:30", provider_id=other_dentist.id)

        rows = DatabaseBookingReader(db)(BookingSource.WALK_IN, DAY, dentist.id)
        assert [r.time for r in rows] == ["11:00 - 11:30"]

    def test_walk_ins_without_provider_read_clinic_wide(self, db, dentist, other_dentist):
        add_booking(db, provider_id=dentist.id)
        add_booking(db, time="12:00 - 12:30", provider_id=other_dentist.id)

        rows = DatabaseBookingReader(db)(BookingSource.WALK_IN, DAY, None)
        assert len(rows) == 2

    def test_online_requests_ignore_provider_by_default(self, db, dentist, other_dentist):
        add_booking(db, models.OnlineRequest, provider_id=other_dentist.id)

        rows = DatabaseBookingReader(db)(BookingSource.ONLINE_REQUEST, DAY, dentist.id)
        assert len(rows) == 1

    def test_online_requests_scoped_when_configured(self, db, dentist, other_dentist):
        add_booking(db, models.OnlineRequest, provider_id=other_dentist.id)

        reader = DatabaseBookingReader(db, online_scoped_by_provider=True)
        assert reader(BookingSource.ONLINE_REQUEST, DAY, dentist.id) == []

    def test_other_dates_ignored(self, db):
        add_booking(db, date=date(2030, 3, 5))
        assert DatabaseBookingReader(db)(BookingSource.WALK_IN, DAY) == []

    def test_excluded_booking_skipped(self, db):
        booking = add_booking(db)
        reader = DatabaseBookingReader(db, exclude=(BookingSource.WALK_IN, booking.id))
        assert reader(BookingSource.WALK_IN, DAY) == []

    def test_allocator_over_database(self, db, dentist, other_dentist):
        add_booking(db, provider_id=dentist.id)
        add_booking(db, models.OnlineRequest, time="14:00 - 14:30", status="paid")
        add_booking(db, time="15:00 - 15:30", provider_id=other_dentist.id)
        add_booking(db, models.OnlineRequest, time="16:00 - 16:30", status="pending")

        slots = SlotAllocator(DatabaseBookingReader(db)).available(DAY, dentist.id)
        assert "11:00 - 11:30" not in slots
        assert "14:00 - 14:30" not in slots
        assert "15:00 - 15:30" in slots
        assert "16:00 - 16:30" in slots


class TestReserveSlot:
    """Tests for reserve_slot against a single session."""

    def test_first_reservation_creates_schedule_day(self, db, dentist):
        assert reserve_slot(db, DAY, dentist.id, "10:00 - 10:30", 30) == 1
        db.commit()
        assert db.get(models.ScheduleDay, DAY).version == 1

    def test_each_reservation_bumps_version(self, db, dentist):
        reserve_slot(db, DAY, dentist.id, "10:00 - 10:30", 30)
        db.commit()
        assert reserve_slot(db, DAY, dentist.id, "13:00 - 13:30", 30) == 2
        db.commit()
        assert db.get(models.ScheduleDay, DAY).version == 2

    def test_taken_slot_rejected(self, db, dentist):
        add_booking(db, provider_id=dentist.id)
        with pytest.raises(SlotUnavailableError) as exc:
            reserve_slot(db, DAY, dentist.id, "10:30 - 11:00", 60)
        assert not isinstance(exc.value, ScheduleConflictError)

    def test_unknown_time_rejected(self, db, dentist):
        with pytest.raises(SlotUnavailableError):
            reserve_slot(db, DAY, dentist.id, "09:00 - 09:30", 30)

    def test_past_closing_rejected(self, db, dentist):
        with pytest.raises(SlotUnavailableError):
            reserve_slot(db, DAY, dentist.id, "16:30 - 17:00", 60)

    def test_booking_can_keep_its_own_slot(self, db, dentist):
        booking = add_booking(db, provider_id=dentist.id)
        version = reserve_slot(
            db, DAY, dentist.id, "11:00 - 11:30", 60, exclude=(BookingSource.WALK_IN, booking.id)
        )
        assert version == 1

    def test_reservation_ignores_fail_open(self, db, dentist, monkeypatch):
        """Reservations never book blind when bookings cannot be read."""
        from clinic.slots import BookingFetchError

        def broken(self, source, day, provider_id=None):
            raise BookingFetchError("read failed")

        monkeypatch.setattr(DatabaseBookingReader, "__call__", broken)
        with pytest.raises(BookingFetchError):
            reserve_slot(db, DAY, dentist.id, "10:00 - 10:30", 30)


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory over a file database so sessions use separate connections."""
    engine = create_engine(f"sqlite:///{tmp_path / 'clinic.db'}", connect_args={"check_same_thread": False})
    event.listen(engine, "connect", enable_sqlite_fk)
    models.Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


class TestConcurrentReservations:
    """Two writers racing for the same date."""

    def _interleave(self, monkeypatch, other_writer):
        """Run `other_writer` after the availability check of the next reservation."""
        original = SlotAllocator.can_start_at

        def check_then_race(self, *args, **kwargs):
            result = original(self, *args, **kwargs)
            other_writer()
            return result

        monkeypatch.setattr(SlotAllocator, "can_start_at", check_then_race)

    def test_concurrent_update_detected(self, file_sessions, monkeypatch):
        with file_sessions() as setup:
            setup.add(models.ScheduleDay(date=DAY, version=1))
            setup.commit()

        def other_writer():
            with file_sessions() as other:
                other.get(models.ScheduleDay, DAY).version = 2
                other.commit()

        self._interleave(monkeypatch, other_writer)

        with file_sessions() as session:
            with pytest.raises(ScheduleConflictError):
                reserve_slot(session, DAY, None, "10:00 - 10:30", 30)
            session.rollback()

    def test_concurrent_first_reservation_detected(self, file_sessions, monkeypatch):
        def other_writer():
            with file_sessions() as other:
                other.add(models.ScheduleDay(date=DAY, version=1))
                other.commit()

        self._interleave(monkeypatch, other_writer)

        with file_sessions() as session:
            with pytest.raises(ScheduleConflictError):
                reserve_slot(session, DAY, None, "10:00 - 10:30", 30)
            session.rollback()

    def test_sequential_reservations_succeed(self, file_sessions):
        with file_sessions() as first:
            reserve_slot(first, DAY, None, "10:00 - 10:30", 30)
            first.commit()
        with file_sessions() as second:
            assert reserve_slot(second, DAY, None, "11:00 - 11:30", 30) == 2
            second.commit()
