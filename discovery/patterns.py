"""
Pattern Set
-----------
Compiled matchers for the string criteria of a query.

Each criterion is compiled on first use and cached until it is assigned
again. An empty criterion matches everything.
"""

from typing import List, Optional, Sequence

from commands.model import ModuleSpecification, TypeName
from commands.wildcard import WildcardPattern, create_patterns

from .query import CommandQuery


class PatternSet:
    """Lazily compiled verb, noun, module and parameter matchers."""

    def __init__(self, query: Optional[CommandQuery] = None):
        self._verbs: List[str] = []
        self._nouns: List[str] = []
        self._modules: List[str] = []
        self._parameter_names: List[str] = []
        self._parameter_types: List[TypeName] = []
        self.module_specifications: List[ModuleSpecification] = []

        self._verb_patterns: Optional[List[WildcardPattern]] = None
        self._noun_patterns: Optional[List[WildcardPattern]] = None
        self._module_patterns: Optional[List[WildcardPattern]] = None
        self._parameter_name_patterns: Optional[List[WildcardPattern]] = None

        if query is not None:
            self.verbs = query.verb
            self.nouns = query.noun
            self.modules = query.module or []
            self.parameter_names = query.parameter_name or []
            self.parameter_types = query.parameter_type or []
            self.module_specifications = list(query.fully_qualified_module or [])

    # Criteria (assignment drops the compiled form)

    @property
    def verbs(self) -> List[str]:
        return self._verbs

    @verbs.setter
    def verbs(self, value: Sequence[str]) -> None:
        self._verbs = list(value or [])
        self._verb_patterns = None

    @property
    def nouns(self) -> List[str]:
        return self._nouns

    @nouns.setter
    def nouns(self, value: Sequence[str]) -> None:
        self._nouns = list(value or [])
        self._noun_patterns = None

    @property
    def modules(self) -> List[str]:
        return self._modules

    @modules.setter
    def modules(self, value: Sequence[str]) -> None:
        self._modules = list(value or [])
        self._module_patterns = None

    @property
    def parameter_names(self) -> List[str]:
        return self._parameter_names

    @parameter_names.setter
    def parameter_names(self, value: Sequence[str]) -> None:
        self._parameter_names = list(value or [])
        self._parameter_name_patterns = None

    @property
    def parameter_types(self) -> List[TypeName]:
        return self._parameter_types

    @parameter_types.setter
    def parameter_types(self, value: Sequence[TypeName]) -> None:
        self._parameter_types = self.filter_parameter_types(value or [])

    # Compiled matchers

    @property
    def verb_patterns(self) -> List[WildcardPattern]:
        if self._verb_patterns is None:
            self._verb_patterns = create_patterns(self._verbs)
        return self._verb_patterns

    @property
    def noun_patterns(self) -> List[WildcardPattern]:
        if self._noun_patterns is None:
            self._noun_patterns = create_patterns(self._nouns)
        return self._noun_patterns

    @property
    def module_patterns(self) -> List[WildcardPattern]:
        if self._module_patterns is None:
            self._module_patterns = create_patterns(self._modules)
        return self._module_patterns

    @property
    def parameter_name_patterns(self) -> List[WildcardPattern]:
        if self._parameter_name_patterns is None:
            self._parameter_name_patterns = create_patterns(self._parameter_names)
        return self._parameter_name_patterns

    @property
    def has_module_criteria(self) -> bool:
        return bool(self.module_patterns) or bool(self.module_specifications)

    @property
    def has_parameter_criteria(self) -> bool:
        return bool(self._parameter_names) or bool(self._parameter_types)

    @staticmethod
    def filter_parameter_types(types: Sequence[TypeName]) -> List[TypeName]:
        """
        Drop constraints that would swallow others.

        'CimInstance' is dropped when 'CimInstance#Win32_Process' is also
        requested, and the universal object type is dropped unless it is
        the first one given.
        """
        kept = []
        for i, type_name in enumerate(types):
            specialized = type_name.name.casefold() + "#"
            if any(other.name.casefold().startswith(specialized) for other in types):
                continue
            if i != 0 and type_name.is_universal:
                continue
            kept.append(type_name)
        return kept
