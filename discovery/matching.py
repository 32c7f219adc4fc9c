"""
Match Evaluator
---------------
Predicates deciding whether a command satisfies the query criteria.

No side effects except recording matched parameter names, which the
finalizer uses to report requested parameters that nothing exposes.
"""

from typing import Optional
import logging

from commands.model import (
    CmdletInfo, CommandInfo, CommandType, NAMED_PAIR_TYPES, ParameterMetadata,
    split_cmdlet_name,
)
from commands.wildcard import matches_any

from .patterns import PatternSet
from .query import CommandQuery, MatchState


class MatchEvaluator:
    """Type, verb/noun, module and parameter checks."""

    def __init__(self, query: CommandQuery, patterns: PatternSet, state: MatchState):
        self.query = query
        self.patterns = patterns
        self.state = state
        self._command_type = query.effective_command_type
        self._logger = logging.getLogger("cmdscope.discovery.matching")

    def is_type_match(self, command: CommandInfo, mask: Optional[CommandType] = None) -> bool:
        mask = self._command_type if mask is None else mask
        return bool(command.command_type & mask)

    def needs_verb_noun_check(self, command: CommandInfo) -> bool:
        if command.command_type == CommandType.CMDLET:
            return True
        has_criteria = bool(self.patterns.verbs) or bool(self.patterns.nouns)
        return has_criteria and bool(command.command_type & NAMED_PAIR_TYPES)

    def is_module_match(self, command: CommandInfo) -> bool:
        """Module check for commands that skip the verb/noun check."""
        if self.patterns.module_specifications:
            return any(spec.matches(command.module) for spec in self.patterns.module_specifications)
        if self.patterns.module_patterns:
            return matches_any(command.module_name, self.patterns.module_patterns)
        return True

    def is_verb_noun_match(self, command: CommandInfo) -> bool:
        if command.module_name:
            if self.patterns.module_specifications:
                if not any(
                    spec.matches(command.module)
                    for spec in self.patterns.module_specifications
                ):
                    return False
            elif not matches_any(command.module_name, self.patterns.module_patterns):
                return False
        elif self.patterns.has_module_criteria:
            # Filtering on a module but the command has none
            return False

        if isinstance(command, CmdletInfo):
            verb, noun = command.verb, command.noun
        else:
            parts = split_cmdlet_name(command.name)
            if parts is None:
                return False
            verb, noun = parts

        if not matches_any(verb, self.patterns.verb_patterns):
            return False
        return matches_any(noun, self.patterns.noun_patterns)

    def is_criteria_match(self, command: CommandInfo) -> bool:
        """Type check plus whichever of the verb/noun or module checks applies."""
        matched = self.is_type_match(command)
        if self.needs_verb_noun_check(command):
            if not self.is_verb_noun_match(command):
                matched = False
        elif not self.is_module_match(command):
            matched = False
        return matched

    def is_parameter_match(self, command: CommandInfo) -> bool:
        """
        True if some parameter matches the name and type criteria.

        Every parameter is visited so that all matching names get
        recorded. Commands without readable metadata never match.
        """
        if self.query.parameter_name is None and self.query.parameter_type is None:
            return True

        if self.state.matched_parameter_names is None:
            self.state.matched_parameter_names = set()

        outcome = command.try_parameters()
        if not outcome.available:
            if outcome.error is not None:
                self._logger.debug(f"No parameter metadata for {command.name}: {outcome.error}")
            return False

        found = False
        for parameter in outcome.value.values():
            if self._is_parameter_metadata_match(parameter):
                found = True
        return found

    def _is_parameter_metadata_match(self, parameter: ParameterMetadata) -> bool:
        patterns = self.patterns.parameter_name_patterns

        name_matches = matches_any(parameter.name, patterns)

        alias_matches = False
        for alias in parameter.aliases or []:
            if matches_any(alias, patterns):
                self.state.record_parameter_name(alias)
                alias_matches = True

        if name_matches or alias_matches:
            self.state.record_parameter_name(parameter.name)
            name_ok = True
        else:
            name_ok = False

        types = self.patterns.parameter_types
        if not types:
            type_ok = True
        else:
            type_ok = any(parameter.is_matching_type(t) for t in types)

        return name_ok and type_ok
