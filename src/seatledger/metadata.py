"""Metadata resolution — course id to full descriptor URI.

The ledger stores only the reference string of each course. The full URI
is ``base_uri + metadata_ref``. A reference that already carries a scheme
(``ipfs://...``, ``https://...``) is returned unchanged.
"""

from __future__ import annotations

from seatledger.registry.courses import CourseRegistry


class MetadataResolver:
    def __init__(self, courses: CourseRegistry, base_uri: str = "") -> None:
        self._courses = courses
        self._base_uri = base_uri

    @property
    def base_uri(self) -> str:
        return self._base_uri

    def uri(self, course_id: int) -> str:
        ref = self._courses.require(course_id).metadata_ref
        if "://" in ref:
            return ref
        return f"{self._base_uri}{ref}"
