"""
Interview Field Extractor

Parses a free-form French conversation transcript into an invitation record
using pattern rules. Any object with an ``extract(transcript)`` method
returning an ExtractionResult can replace it in the orchestrator.
"""
import re
from typing import List, Optional

from interview_dispatch.models import (
    DEFAULT_DURATION,
    DEFAULT_LOCATION,
    EMAIL_PATTERN,
    ONSITE_LOCATION,
    REMOTE_LOCATION,
    ExtractionResult,
    InvitationRecord,
)

# Capitalized word, accented letters included. Kept case-sensitive even
# though the cues around it are not.
_NAME_WORD = r"[A-ZÀ-ÖØ-Þ][a-zà-öø-ÿ']+(?:-[A-ZÀ-ÖØ-Þ][a-zà-öø-ÿ']+)*"
_NAME = rf"({_NAME_WORD}(?:[ \t]+{_NAME_WORD})?)"
_TITLE = r"(\w[\w-]*(?:[ \t]+\w[\w-]*)?)"
_APOS = r"['’]"


class FieldExtractor:
    """Extract interview invitation fields from conversation text"""

    # Required for dispatch, in the order they are reported
    REQUIRED_FIELDS = ["email", "name", "post", "date", "time"]

    FIELD_LABELS = {
        "email": "l'email du candidat",
        "name": "le nom du candidat",
        "post": "le poste",
        "date": "la date de l'entretien (JJ/MM/AAAA)",
        "time": "l'heure de l'entretien (HH:MM)",
    }

    NAME_PATTERNS = [
        rf"(?i:\b(?:pré)?nom\b[^\n.]*?(?:c{_APOS}est|\best)\s*:?[ \t]*){_NAME}",
        rf"(?i:s{_APOS}appelle[ \t]+){_NAME}",
        rf"(?i:\bcandidat(?:e)?\b[^\n.]*?c{_APOS}est[ \t]+){_NAME}",
    ]

    POST_PATTERNS = [
        # Defers to the poste cues below when the word after the article is "poste"
        rf"postule[ \t]+pour[ \t]+(?!(?:(?:un|une|le|la)[ \t]+|l{_APOS})?poste\b)(?:devenir[ \t]+)?(?:(?:un|une|le|la)[ \t]+|l{_APOS})?{_TITLE}",
        rf"pour[ \t]+devenir[ \t]+(?:(?:un|une|le|la)[ \t]+|l{_APOS})?{_TITLE}",
        rf"poste[ \t]+de[ \t]+{_TITLE}",
        rf"poste[ \t]*:[ \t]*{_TITLE}",
    ]

    DATE_PATTERN = r"(?<!\d)(\d{2}/\d{2}/\d{4})(?!\d)"

    TIME_PATTERN = r"(?<!\w)(\d{1,2})[ \t]?[h:][ \t]?(\d{1,2})(?!\d)"

    DURATION_PATTERN = r"(?:durera|durée|pendant)[^\d\n]{0,30}?(\d+)[ \t]*(?:minutes|min|mn)\b"

    LOCATION_PATTERN = r"\b(visioconf[ée]rence|visio|pr[ée]sentiel|ligne|hybride|t[ée]l[ée]phonique)\b"

    REMOTE_CUES = ("visio", "ligne", "phonique")

    def extract(self, transcript: str) -> ExtractionResult:
        """
        Extract an invitation record from a conversation transcript.

        Args:
            transcript: All conversation turns, newline-joined

        Returns:
            ExtractionResult with either a complete record or the names
            of the required fields that could not be found
        """
        transcript = transcript or ""

        found = {
            "email": self.extract_email(transcript),
            "name": self.extract_name(transcript),
            "post": self.extract_post_title(transcript),
            "date": self.extract_date(transcript),
            "time": self.extract_time(transcript),
        }

        missing = [field for field in self.REQUIRED_FIELDS if not found[field]]
        if missing:
            return ExtractionResult(record=None, missing_fields=missing)

        record = InvitationRecord(
            candidate_email=found["email"],
            candidate_name=found["name"],
            post_title=found["post"],
            interview_date=found["date"],
            interview_time=found["time"],
            interview_duration=self.extract_duration(transcript),
            interview_location=self.extract_location(transcript),
        )
        return ExtractionResult(record=record, missing_fields=[])

    def extract_email(self, text: str) -> Optional[str]:
        match = re.search(EMAIL_PATTERN, text)
        return match.group(0) if match else None

    def extract_name(self, text: str) -> Optional[str]:
        return self._first_match(self.NAME_PATTERNS, text, flags=0)

    def extract_post_title(self, text: str) -> Optional[str]:
        return self._first_match(self.POST_PATTERNS, text, flags=re.IGNORECASE)

    def extract_date(self, text: str) -> Optional[str]:
        match = re.search(self.DATE_PATTERN, text)
        return match.group(1) if match else None

    def extract_time(self, text: str) -> Optional[str]:
        """First H/HH[h|:]MM token, normalized to HH:MM"""
        match = re.search(self.TIME_PATTERN, text, re.IGNORECASE)
        if not match:
            return None
        hours, minutes = match.groups()
        return f"{int(hours):02d}:{int(minutes):02d}"

    def extract_duration(self, text: str) -> str:
        match = re.search(self.DURATION_PATTERN, text, re.IGNORECASE)
        if not match:
            return DEFAULT_DURATION
        return f"{int(match.group(1))} minutes"

    def extract_location(self, text: str) -> str:
        """Classify the interview modality into remote or on-site"""
        match = re.search(self.LOCATION_PATTERN, text, re.IGNORECASE)
        if not match:
            return DEFAULT_LOCATION

        cue = match.group(1).lower()
        if any(remote in cue for remote in self.REMOTE_CUES):
            return REMOTE_LOCATION
        return ONSITE_LOCATION

    def format_missing_fields(self, missing_fields: List[str]) -> str:
        """
        Build the message asking the recruiter to resupply missing fields.

        Args:
            missing_fields: Field names reported by extract()

        Returns:
            French message enumerating exactly those fields
        """
        lines = [f"- {self.FIELD_LABELS.get(field, field)}" for field in missing_fields]
        return (
            "⚠️ Je n'ai pas pu envoyer l'email : il manque les informations suivantes :\n"
            + "\n".join(lines)
            + "\nMerci de me les préciser."
        )

    @staticmethod
    def _first_match(patterns: List[str], text: str, flags: int) -> Optional[str]:
        for pattern in patterns:
            match = re.search(pattern, text, flags)
            if match:
                return match.group(1).strip()
        return None
