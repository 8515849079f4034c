"""
Abstract base class for value set expanders.

An expander turns a value set url into the answer options of a coded
question, either through a terminology server declared on the form or
through the FHIR server of the current context.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from sdc_importer.form.models import AnswerOption


def expansion_url(terminology_server: str, value_set: str) -> str:
    """URL of the $expand operation for a value set on a terminology server."""
    return f"{terminology_server.rstrip('/')}/ValueSet/$expand?url={value_set}"


class ValueSetExpander(ABC):
    """
    Resolves answer value sets.

    Implementations raise on any failure; callers decide how failures are
    reported.
    """

    @abstractmethod
    async def expand(
        self, value_set: str, terminology_server: Optional[str] = None
    ) -> List[AnswerOption]:
        """
        Expand a value set.

        Args:
            value_set: canonical url (or identifier) of the value set
            terminology_server: base url of the server to expand it on; the
                context FHIR server is used when not given

        Returns:
            The answer options of the expansion
        """
        pass

    async def close(self) -> None:
        """Release transport resources."""
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
