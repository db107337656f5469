"""Handler signature validation for strict mode."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, get_type_hints

from pydantic import BaseModel

from routebind.params import unwrap_optional
from routebind.response import Response

if TYPE_CHECKING:
    from routebind.converters import ConverterRegistry
    from routebind.routing import Route

# Parameters supplied by the framework rather than by the request.
_FRAMEWORK_PARAMS = frozenset({"request", "bindings"})


def _is_basemodel(tp: Any) -> bool:
    """Return True if *tp* is a BaseModel subclass."""
    return isinstance(tp, type) and issubclass(tp, BaseModel)


def validate_handler_signature(route: Route, converters: ConverterRegistry | None = None) -> None:
    """Validate a handler's type annotations before the app starts serving.

    Raises :class:`TypeError` with an actionable message when the handler
    violates strict-mode typing rules.
    """
    func = route.handler
    name = getattr(func, "__name__", repr(func))
    methods = ",".join(sorted(route.methods)) or "ANY"
    where = f"[{methods} {route.pattern}]"
    hints = get_type_hints(func)
    sig = inspect.signature(func)
    path_param_names = set(route.variables)

    # --- Rule 1: Return type annotation must exist ---
    ret = hints.get("return")
    if ret is None:
        raise TypeError(
            f"\n\nStrict-mode violation in handler '{name}' {where}\n"
            f"  Problem: Missing return type annotation.\n"
            f"  Fix:     Add a return type, e.g. -> JSONResponse or -> YourModel.\n"
            f"  Rules:   Return type must be a Response subclass, a BaseModel subclass, "
            f"an entity type with a converter or None.\n"
        )

    # --- Rule 2: Return type must be structured ---
    is_response = isinstance(ret, type) and issubclass(ret, Response)
    is_entity = converters is not None and ret in converters
    if not (ret is type(None) or is_response or _is_basemodel(ret) or is_entity):
        raise TypeError(
            f"\n\nStrict-mode violation in handler '{name}' {where}\n"
            f"  Current: -> {ret.__name__ if isinstance(ret, type) else ret!r}\n"
            f"  Problem: Return type must be a Response subclass, a BaseModel subclass, "
            f"an entity type with a converter or None.\n"
            f"  Fix:     Use -> JSONResponse, -> Response, -> YourModel(BaseModel) or -> None.\n"
            f"  Rejected types: dict, list, str, int, and other primitives.\n"
        )

    for param_name in sig.parameters:
        if param_name in _FRAMEWORK_PARAMS:
            continue

        hint = hints.get(param_name)
        target, _ = unwrap_optional(hint)

        # --- Rule 3: All params must be typed ---
        if hint is None:
            raise TypeError(
                f"\n\nStrict-mode violation in handler '{name}' {where}\n"
                f"  Problem: Parameter '{param_name}' has no type annotation.\n"
                f"  Fix:     Add a type annotation, e.g. {param_name}: int "
                f"or {param_name}: YourEntity.\n"
            )

        # Entities are looked up through their converter
        if converters is not None and target in converters:
            continue

        # Path params: primitives are OK, just need the annotation (Rule 3 above)
        if param_name in path_param_names:
            continue

        # --- Rule 4: Query params must be grouped in a model ---
        if not _is_basemodel(hint):
            type_label = hint.__name__ if isinstance(hint, type) else repr(hint)
            raise TypeError(
                f"\n\nStrict-mode violation in handler '{name}' {where}\n"
                f"  Current: {param_name}: {type_label}\n"
                f"  Problem: Non-path parameter '{param_name}' must be a "
                f"BaseModel subclass or an entity type with a converter.\n"
                f"  Fix:     Wrap '{param_name}' fields in a Pydantic model, "
                f"e.g. {param_name}: {param_name.title()}Model.\n"
                f"  Rejected types: dict, list, str, int, and other primitives.\n"
            )
