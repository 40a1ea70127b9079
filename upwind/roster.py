from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import yaml

from upwind.models import Booking, Student


class RosterStore:
    """In-memory students and bookings, keyed by student id.

    The scheduling core only reads from the roster. Callers hold scan and
    reschedule results by handing the full booking list back to
    :meth:`publish`, the single write point.
    """

    def __init__(self, students: Iterable[Student] = (), bookings: Iterable[Booking] = ()) -> None:
        self._students: Dict[str, Student] = {student.id: student for student in students}
        self._bookings: Dict[str, List[Booking]] = {}
        for booking in bookings:
            self._bookings.setdefault(booking.student_id, []).append(booking)
        for student_id, items in self._bookings.items():
            self._bookings[student_id] = sorted(items, key=lambda booking: booking.scheduled_at)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "RosterStore":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return cls(
            students=[Student.from_dict(item) for item in data.get("students", [])],
            bookings=[Booking.from_dict(item) for item in data.get("bookings", [])],
        )

    @classmethod
    def from_path(cls, path: Optional[str]) -> "RosterStore":
        if path and Path(path).exists():
            return cls.from_yaml(path)
        return cls()

    def students(self) -> List[Student]:
        return list(self._students.values())

    def get_student(self, student_id: str) -> Optional[Student]:
        return self._students.get(student_id)

    def bookings_for(self, student_id: str) -> Sequence[Booking]:
        return self._bookings.get(student_id, [])

    def find_booking(self, booking_id: str) -> Optional[Booking]:
        for bookings in self._bookings.values():
            for booking in bookings:
                if booking.id == booking_id:
                    return booking
        return None

    def publish(self, student_id: str, bookings: Sequence[Booking]) -> bool:
        """Store a new booking list for a student; returns False if nothing changed."""

        current = self._bookings.get(student_id, [])
        if bookings is current:
            return False
        self._bookings[student_id] = sorted(bookings, key=lambda booking: booking.scheduled_at)
        return True
