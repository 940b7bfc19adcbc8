"""
Dialog graph.

Nodes are frozen dataclasses of four kinds. The graph is validated once at
construction: every referenced node id exists, every validation type is
known and every Service parameter is produced somewhere. Any defect raises
GraphError with the full problem list.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from ussd_gateway.backend.operations import REQUIRED_PARAMS, Operation
from ussd_gateway.core.errors import GraphError, InvalidChoice, UnknownNode, UnknownValidationType
from ussd_gateway.core.validation import ValidationSpec, Validator
from ussd_gateway.settings import settings

BACK = "0"
HOME = "00"

# Always resolvable when building a Service payload
IDENTITY_PARAMS = frozenset({"msisdn", "customerId"})
# Fields the engine fills on successful authentication
AUTH_FIELDS = frozenset({"accounts"})

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class SideEffect(str, Enum):
    NONE = "none"
    SET_LANGUAGE = "set_language"
    END_SESSION = "end_session"
    USE_OWN_NUMBER = "use_own_number"


@dataclass(frozen=True)
class Choice:
    next: Optional[str] = None
    side_effect: SideEffect = SideEffect.NONE
    # SET_LANGUAGE: language tag; END_SESSION: goodbye text
    value: Optional[str] = None
    # USE_OWN_NUMBER: field receiving the subscriber number; otherwise the
    # field receiving ``value`` (e.g. a network or biller constant)
    field: Optional[str] = None


@dataclass(frozen=True)
class StaticNode:
    id: str
    prompt: str
    next: Optional[str] = None
    back: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.next is None


@dataclass(frozen=True)
class MenuNode:
    id: str
    prompt: str
    choices: Mapping[str, Choice] = field(default_factory=dict)
    # Dynamic menu: options read from a session list of {"id", "label"}
    options_from: Optional[str] = None
    store_as: Optional[str] = None
    next: Optional[str] = None
    back: Optional[str] = None


@dataclass(frozen=True)
class InputNode:
    id: str
    prompt: str
    field: str
    validation: ValidationSpec
    next: str
    sensitive: bool = False
    confirm_of: Optional[str] = None
    back: Optional[str] = None


@dataclass(frozen=True)
class ServiceNode:
    id: str
    operation: Operation
    on_success: str
    on_error: str
    # operation param name -> session field (or identity) name
    params: Mapping[str, str] = field(default_factory=dict)
    constants: Mapping[str, str] = field(default_factory=dict)
    # outcome data key -> session field
    store_results: Mapping[str, str] = field(default_factory=dict)
    prompt: str = ""
    back: Optional[str] = None


Node = Union[StaticNode, MenuNode, InputNode, ServiceNode]


@dataclass(frozen=True)
class Transition:
    next: Optional[str]
    store: Optional[Tuple[str, str]] = None
    side_effect: SideEffect = SideEffect.NONE
    choice: Optional[Choice] = None


@dataclass(frozen=True)
class Navigation:
    exit: bool = False
    target: Optional[str] = None


def fill_template(template: str, values: Mapping) -> str:
    """{name} is replaced when known; unknown placeholders stay as typed."""
    def _sub(m):
        key = m.group(1)
        if key in values and values[key] is not None:
            return str(values[key])
        return m.group(0)
    return _PLACEHOLDER.sub(_sub, template or "")


class MenuGraph:
    def __init__(
        self,
        nodes: Iterable[Node],
        entry: str,
        home: str,
        validator: Validator = None,
        translations: Optional[Dict[str, Dict[str, str]]] = None,
        exit_sentinel: str = None,
    ):
        self._nodes: Dict[str, Node] = {}
        problems: List[str] = []
        for n in nodes:
            if n.id in self._nodes:
                problems.append(f"duplicate node id {n.id}")
            self._nodes[n.id] = n
        self.entry = entry
        self.home = home
        self.validator = validator or Validator()
        self.translations = translations or {}
        self.exit_sentinel = exit_sentinel or settings.EXIT_SENTINEL
        problems.extend(self._check())
        if problems:
            raise GraphError(problems)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def resolve(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise UnknownNode(node_id)

    # ------------------------------------------------------------------
    # load-time integrity

    def _produced_fields(self) -> Set[str]:
        out: Set[str] = set(IDENTITY_PARAMS) | set(AUTH_FIELDS)
        for n in self._nodes.values():
            if isinstance(n, InputNode):
                out.add(n.field)
            elif isinstance(n, MenuNode):
                if n.store_as:
                    out.add(n.store_as)
                for c in n.choices.values():
                    if c.field:
                        out.add(c.field)
            elif isinstance(n, ServiceNode):
                out.update(n.store_results.values())
        return out

    def _check(self) -> List[str]:
        problems: List[str] = []
        for label, target in (("entry", self.entry), ("home", self.home)):
            if target not in self._nodes:
                problems.append(f"{label} node {target!r} does not exist")

        produced = self._produced_fields()

        def ref(node_id: str, what: str, target: Optional[str]):
            if target is not None and target not in self._nodes:
                problems.append(f"{node_id}: {what} -> unknown node {target!r}")

        for n in self._nodes.values():
            ref(n.id, "back", n.back)
            if isinstance(n, StaticNode):
                ref(n.id, "next", n.next)
            elif isinstance(n, MenuNode):
                if not n.choices and not n.options_from:
                    problems.append(f"{n.id}: menu has neither choices nor options_from")
                if n.options_from and not (n.store_as and n.next):
                    problems.append(f"{n.id}: dynamic menu needs store_as and next")
                ref(n.id, "next", n.next)
                for key, c in n.choices.items():
                    ref(n.id, f"choice {key}", c.next)
                    if c.next is None and c.side_effect is not SideEffect.END_SESSION:
                        problems.append(f"{n.id}: choice {key} has no next and does not end the session")
            elif isinstance(n, InputNode):
                ref(n.id, "next", n.next)
                try:
                    self.validator.ensure_known(n.validation)
                except UnknownValidationType as e:
                    problems.append(f"{n.id}: {e}")
                if n.confirm_of and n.confirm_of not in produced:
                    problems.append(f"{n.id}: confirm_of field {n.confirm_of!r} is never collected")
            elif isinstance(n, ServiceNode):
                ref(n.id, "on_success", n.on_success)
                ref(n.id, "on_error", n.on_error)
                if n.operation is Operation.UNKNOWN:
                    problems.append(f"{n.id}: unknown operation")
                    continue
                supplied = set(n.params.keys()) | set(n.constants.keys())
                for name in REQUIRED_PARAMS.get(n.operation, ()):
                    if name not in supplied:
                        problems.append(f"{n.id}: {n.operation.value} needs parameter {name!r}")
                for name, source in n.params.items():
                    if source not in produced:
                        problems.append(f"{n.id}: parameter {name!r} reads field {source!r} that no node collects")
            else:
                problems.append(f"{getattr(n, 'id', '?')}: unsupported node type {type(n).__name__}")
        return problems

    # ------------------------------------------------------------------
    # navigation + transitions

    def navigate(self, node: Node, raw: str) -> Optional[Navigation]:
        """Back/home/exit, checked before any per-node choice resolution."""
        if raw == self.exit_sentinel:
            return Navigation(exit=True)
        if raw == HOME:
            return Navigation(target=self.home)
        if raw == BACK and node.back:
            return Navigation(target=node.back)
        return None

    def dynamic_options(self, node: MenuNode, fields: Mapping) -> List[dict]:
        opts = fields.get(node.options_from) if node.options_from else None
        return [o for o in (opts or []) if isinstance(o, dict) and "id" in o]

    def transition(self, node: Node, value: str = "", fields: Mapping = None, ok: bool = None) -> Transition:
        """
        Pure: the same (node, value, fields, ok) always yields the same Transition.
        ``value`` must already be normalized for Input nodes; ``ok`` is the
        Service outcome.
        """
        if isinstance(node, StaticNode):
            return Transition(next=node.next)

        if isinstance(node, MenuNode):
            if node.options_from:
                opts = self.dynamic_options(node, fields or {})
                if value.isdigit() and 1 <= int(value) <= len(opts):
                    return Transition(next=node.next, store=(node.store_as, str(opts[int(value) - 1]["id"])))
                raise InvalidChoice(node.id, value)
            choice = node.choices.get(value)
            if choice is None:
                raise InvalidChoice(node.id, value)
            store = (choice.field, choice.value) if (choice.field and choice.value is not None) else None
            return Transition(next=choice.next, store=store, side_effect=choice.side_effect, choice=choice)

        if isinstance(node, InputNode):
            return Transition(next=node.next, store=(node.field, value))

        if isinstance(node, ServiceNode):
            return Transition(next=node.on_success if ok else node.on_error)

        raise UnknownNode(getattr(node, "id", str(node)))

    # ------------------------------------------------------------------
    # rendering

    def prompt_for(self, node: Node, language: str = "en") -> str:
        return self.translations.get(language, {}).get(node.id, node.prompt)

    def render(self, node: Node, values: Mapping, language: str = "en") -> str:
        text = fill_template(self.prompt_for(node, language), values)
        if isinstance(node, MenuNode) and node.options_from:
            lines = [text] if text else []
            for idx, opt in enumerate(self.dynamic_options(node, values), start=1):
                lines.append(f"{idx}. {opt.get('label') or opt['id']}")
            if node.back:
                lines.append(f"{BACK}. Back")
            text = "\n".join(lines)
        return text
