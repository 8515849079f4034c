"""
Answer-set prefetch and cache.

Coded questions whose answers come from an external value set
(`answerValueSet`, not searched through autocomplete) are resolved once per
resolution key and back-filled into the form:

- key = terminology server expansion URL when the item, or one of its
  ancestors, declares a terminology server
- key = the raw value set url otherwise (expanded on the context FHIR server)

The cache lives as long as its owner (typically the service or the process)
and never evicts. A failed resolution raises for that key only and leaves
the cache untouched.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sdc_importer.exceptions import AnswerSetLoadError
from sdc_importer.form.models import AnswerOption, FormData, FormItem
from .base import ValueSetExpander, expansion_url

logger = logging.getLogger(__name__)


class AnswerSetCache:
    """Resolution key -> answer list, shared by every item using the key."""

    def __init__(self):
        self._entries: Dict[str, List[AnswerOption]] = {}

    def get(self, key: str) -> Optional[List[AnswerOption]]:
        return self._entries.get(key)

    def put(self, key: str, answers: List[AnswerOption]) -> None:
        # a second completion for the same key overwrites; payloads are identical
        self._entries[key] = answers

    def clear(self) -> None:
        self._entries = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class AnswerSetResult:
    """Outcome of resolving one answer value set."""
    key: str
    value_set: str
    answers: Optional[List[AnswerOption]] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(cls, key: str, value_set: str, answers: List[AnswerOption]) -> "AnswerSetResult":
        return cls(key=key, value_set=value_set, answers=answers)

    @classmethod
    def fail(cls, key: str, value_set: str, error: str) -> "AnswerSetResult":
        return cls(key=key, value_set=value_set, error=error)


def get_terminology_server(item: FormItem, ancestors: Sequence[FormItem]) -> Optional[str]:
    """Terminology server of the item, or of its nearest ancestor declaring one."""
    if item.terminology_server:
        return item.terminology_server
    for ancestor in reversed(ancestors):
        if ancestor.terminology_server:
            return ancestor.terminology_server
    return None


def resolution_key(item: FormItem, ancestors: Sequence[FormItem]) -> Optional[str]:
    if not item.answer_value_set:
        return None
    server = get_terminology_server(item, ancestors)
    if server:
        return expansion_url(server, item.answer_value_set)
    return item.answer_value_set


class AnswerSetLoader:
    """
    Loads answer value sets for a form.

    Usage:
        loader = AnswerSetLoader(FHIRValueSetExpander(), on_update=refresh)
        results = await loader.prefetch(form)
    """

    def __init__(
        self,
        expander: ValueSetExpander,
        cache: Optional[AnswerSetCache] = None,
        on_update: Optional[Callable[[FormItem], None]] = None,
    ):
        """
        Args:
            expander: Value set resolver
            cache: Shared cache; a private one is created when omitted
            on_update: Called with each item after its answers were replaced
        """
        self.expander = expander
        self.cache = cache if cache is not None else AnswerSetCache()
        self.on_update = on_update

    async def resolve(
        self, key: str, value_set: str, terminology_server: Optional[str] = None
    ) -> AnswerSetResult:
        """Resolve one value set. Never raises and never touches form items."""
        try:
            answers = await self.expander.expand(value_set, terminology_server)
        except Exception as e:
            logger.warning("Unable to load ValueSet %s (%s): %s", value_set, key, e)
            return AnswerSetResult.fail(key, value_set, str(e))
        return AnswerSetResult.ok(key, value_set, answers)

    def load_answer_value_sets(self, form: FormData) -> List["asyncio.Task[AnswerSetResult]"]:
        """
        Start loading the answer value sets of a form.

        Items whose key is already cached are filled immediately. One task is
        started per uncached key; it fills every item sharing the key, or
        raises AnswerSetLoadError. Must be called from a running event loop.

        Returns:
            The pending tasks
        """
        pending: Dict[str, List[Tuple[FormItem, Optional[str]]]] = {}
        for item, ancestors in form.iter_items():
            if not item.answer_value_set or item.is_search_autocomplete:
                continue
            server = get_terminology_server(item, ancestors)
            key = resolution_key(item, ancestors)
            item.answer_value_set_key = key

            answers = self.cache.get(key)
            if answers is not None:
                self._apply(item, answers)
            else:
                pending.setdefault(key, []).append((item, server))

        return [
            asyncio.ensure_future(self._load(key, entries))
            for key, entries in pending.items()
        ]

    async def prefetch(self, form: FormData) -> List[AnswerSetResult]:
        """
        Load all answer value sets of a form and wait for them.

        A failure for one key does not stop the others; it is reported as a
        failed result.
        """
        tasks = self.load_answer_value_sets(form)
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        results = []
        for outcome in outcomes:
            if isinstance(outcome, AnswerSetLoadError):
                results.append(AnswerSetResult.fail(outcome.key, outcome.value_set, str(outcome)))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)
        return results

    async def _load(
        self, key: str, entries: List[Tuple[FormItem, Optional[str]]]
    ) -> AnswerSetResult:
        first_item, server = entries[0]
        result = await self.resolve(key, first_item.answer_value_set, server)
        if not result.success:
            raise AnswerSetLoadError(key, first_item.answer_value_set, result.error)

        self.cache.put(key, result.answers)
        for item, _ in entries:
            self._apply(item, result.answers)
        return result

    def _apply(self, item: FormItem, answers: List[AnswerOption]) -> None:
        item.answers = list(answers)
        if self.on_update:
            self.on_update(item)
