"""Template function library.

Functions are split into groups:

- pure: deterministic string, number, date, encoding and collection helpers
- fail-fast: `required` and `fail`, which abort the whole render
- environment: `lookup`, `now`, `randAlphaNum`, `uuidv4`; absent in sandbox mode
- template: `include` and `tpl`, bound to the render session

Every function takes the piped value first so it works both as a global,
``toYaml(Values.body)``, and as a filter, ``Values.body | toYaml | nindent(4)``.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import re
import secrets
import string
import uuid
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional, Protocol

import msgspec
import yaml
from jinja2 import Environment, Undefined, pass_context
from pydantic import BaseModel

from chartrender.exceptions import RenderError, RequiredValueError, ResourceLookupError
from chartrender.values import path_value

logger = logging.getLogger(__name__)

# Builtin Jinja filters replaced by the chart version. `list` stays builtin:
# as a filter it converts an iterable.
_OVERRIDDEN_FILTERS = {"indent", "upper", "lower", "title", "trim"}


class ResourceLookup(Protocol):
    """Read access to live cluster resources."""

    def lookup(self, api_version: str, kind: str, namespace: str, name: str) -> dict: ...


class TemplateSession(Protocol):
    """What `include` and `tpl` need from the render in progress."""

    def include(self, name: str, scope: Any) -> str: ...

    def tpl(self, text: str, scope: Any) -> str: ...


def _is_nil(value: Any) -> bool:
    return value is None or isinstance(value, Undefined)


def _s(value: Any) -> str:
    if _is_nil(value):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _int(value: Any) -> int:
    if _is_nil(value):
        return 0
    if isinstance(value, str):
        value = value.strip()
        try:
            return int(value)
        except ValueError:
            return int(float(value))
    return int(value)


# =============================================================================
# Strings
# =============================================================================


def quote(*values: Any) -> str:
    """Double-quote each non-null value, joined by spaces."""
    return " ".join(msgspec.json.encode(_s(v)).decode() for v in values if not _is_nil(v))


def squote(*values: Any) -> str:
    return " ".join(f"'{_s(v)}'" for v in values if not _is_nil(v))


def indent(text: Any, width: int = 0) -> str:
    """Prefix every line, empty ones included, with `width` spaces."""
    pad = " " * _int(width)
    return pad + _s(text).replace("\n", "\n" + pad)


def nindent(text: Any, width: int = 0) -> str:
    """Like indent, with a leading newline."""
    return "\n" + indent(text, width)


def trimPrefix(text: Any, prefix: str) -> str:
    text = _s(text)
    return text[len(prefix):] if prefix and text.startswith(prefix) else text


def trimSuffix(text: Any, suffix: str) -> str:
    text = _s(text)
    return text[: -len(suffix)] if suffix and text.endswith(suffix) else text


def trimAll(text: Any, chars: str) -> str:
    return _s(text).strip(chars)


def hasPrefix(text: Any, prefix: str) -> bool:
    return _s(text).startswith(prefix)


def hasSuffix(text: Any, suffix: str) -> bool:
    return _s(text).endswith(suffix)


def contains(text: Any, substring: str) -> bool:
    return substring in _s(text)


def trunc(text: Any, length: int) -> str:
    """Keep the first `length` characters, or the last ones when negative."""
    text = _s(text)
    length = _int(length)
    if length < 0:
        return text[length:]
    return text[:length]


def repeat(text: Any, count: int) -> str:
    return _s(text) * max(_int(count), 0)


def splitList(text: Any, separator: str) -> list:
    return _s(text).split(separator)


def upper(text: Any) -> str:
    return _s(text).upper()


def lower(text: Any) -> str:
    return _s(text).lower()


def title(text: Any) -> str:
    """Upper-case the first letter of every word, leaving the rest alone."""
    return re.sub(r"(^|\s)(\S)", lambda m: m.group(1) + m.group(2).upper(), _s(text))


def trim(text: Any) -> str:
    return _s(text).strip()


_WORD_RE = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")


def kebabcase(text: Any) -> str:
    return "-".join(w.lower() for w in _WORD_RE.findall(_s(text)))


def snakecase(text: Any) -> str:
    return "_".join(w.lower() for w in _WORD_RE.findall(_s(text)))


# =============================================================================
# Numbers
# =============================================================================


def add(*values: Any) -> int:
    return sum(_int(v) for v in values)


def sub(a: Any, b: Any) -> int:
    return _int(a) - _int(b)


def mul(*values: Any) -> int:
    result = 1
    for v in values:
        result *= _int(v)
    return result


def div(a: Any, b: Any) -> int:
    """Integer division truncating toward zero."""
    a, b = _int(a), _int(b)
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def mod(a: Any, b: Any) -> int:
    a, b = _int(a), _int(b)
    return a - b * div(a, b)


def atoi(text: Any) -> int:
    """Parse an integer; anything unparseable is 0."""
    try:
        return int(_s(text).strip())
    except ValueError:
        return 0


# =============================================================================
# Dates
# =============================================================================


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    raise TypeError(f"cannot interpret {type(value).__name__} as a date")


def dateFormat(value: Any, layout: str = "%Y-%m-%d") -> str:
    """Format a date, ISO string or unix timestamp with a strftime layout."""
    return _as_datetime(value).strftime(layout)


def toDate(text: Any, layout: str = "%Y-%m-%d") -> datetime:
    return datetime.strptime(_s(text), layout)


# =============================================================================
# Encoding
# =============================================================================


class _ChartYamlDumper(yaml.SafeDumper):
    """SafeDumper that writes multi-line strings as literal blocks."""


def _represent_str(dumper: yaml.SafeDumper, data: str):
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_str(data)


_ChartYamlDumper.add_representer(str, _represent_str)
_ChartYamlDumper.add_representer(tuple, yaml.SafeDumper.represent_list)


def toYaml(value: Any) -> str:
    """Serialize to block-style YAML, keys sorted, without the final newline."""
    if isinstance(value, Undefined):
        value = None
    text = yaml.dump(
        value,
        Dumper=_ChartYamlDumper,
        default_flow_style=False,
        sort_keys=True,
        allow_unicode=True,
    )
    if text.endswith("\n...\n"):
        text = text[: -len("...\n")]
    if text.endswith("\n"):
        text = text[:-1]
    return text


def fromYaml(text: Any) -> Any:
    loaded = yaml.safe_load(_s(text))
    return {} if loaded is None else loaded


def _enc_hook(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(by_alias=True, exclude_none=True)
    if isinstance(obj, Undefined):
        return None
    if isinstance(obj, Mapping):
        return dict(obj)
    raise NotImplementedError(f"cannot encode {type(obj).__name__} as JSON")


def toJson(value: Any) -> str:
    return msgspec.json.encode(value, enc_hook=_enc_hook, order="sorted").decode()


def toPrettyJson(value: Any) -> str:
    encoded = msgspec.json.encode(value, enc_hook=_enc_hook, order="sorted")
    return msgspec.json.format(encoded, indent=2).decode()


def fromJson(text: Any) -> Any:
    return msgspec.json.decode(_s(text))


def b64enc(text: Any) -> str:
    return base64.b64encode(_s(text).encode("utf-8")).decode("ascii")


def b64dec(text: Any) -> str:
    return base64.b64decode(_s(text), validate=True).decode("utf-8")


def sha256sum(text: Any) -> str:
    return hashlib.sha256(_s(text).encode("utf-8")).hexdigest()


# =============================================================================
# Collections
# =============================================================================


def hasKey(mapping: Any, key: str) -> bool:
    return isinstance(mapping, Mapping) and key in mapping


def keys(*mappings: Any) -> list:
    result = []
    for m in mappings:
        result.extend(m)
    return result


def pick(mapping: Mapping, *names: str) -> dict:
    return {k: mapping[k] for k in names if k in mapping}


def omit(mapping: Mapping, *names: str) -> dict:
    return {k: v for k, v in mapping.items() if k not in names}


def _merge_missing(target: dict, source: Mapping) -> None:
    for key, value in source.items():
        current = target.get(key)
        if key not in target:
            target[key] = _copy(value)
        elif isinstance(current, dict) and isinstance(value, Mapping):
            _merge_missing(current, value)


def _copy(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _copy(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_copy(v) for v in value]
    return value


def merge(dst: Mapping, *sources: Mapping) -> dict:
    """Deep merge into a new mapping; keys already in `dst` win."""
    result = _copy(dst)
    for src in sources:
        _merge_missing(result, src)
    return result


def dig(mapping: Any, path: str, default: Any = None) -> Any:
    """Value at dotted `path`, or `default` when any segment is missing."""
    result = path_value(mapping, path)
    return result.value if result.found else default


def empty(value: Any) -> bool:
    if _is_nil(value):
        return True
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (str, bytes, Mapping, list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def coalesce(*values: Any) -> Any:
    """First non-empty argument."""
    for v in values:
        if not empty(v):
            return v
    return None


def ternary(condition: Any, true_value: Any, false_value: Any) -> Any:
    return true_value if condition else false_value


def uniq(items: Any) -> list:
    result: list = []
    for item in items:
        if item not in result:
            result.append(item)
    return result


def compact(items: Any) -> list:
    return [item for item in items if not empty(item)]


def list_(*items: Any) -> list:
    return list(items)


PURE_FUNCTIONS: Dict[str, Callable] = {
    "quote": quote,
    "squote": squote,
    "indent": indent,
    "nindent": nindent,
    "trimPrefix": trimPrefix,
    "trimSuffix": trimSuffix,
    "trimAll": trimAll,
    "hasPrefix": hasPrefix,
    "hasSuffix": hasSuffix,
    "contains": contains,
    "trunc": trunc,
    "repeat": repeat,
    "splitList": splitList,
    "upper": upper,
    "lower": lower,
    "title": title,
    "trim": trim,
    "kebabcase": kebabcase,
    "snakecase": snakecase,
    "add": add,
    "sub": sub,
    "mul": mul,
    "div": div,
    "mod": mod,
    "atoi": atoi,
    "dateFormat": dateFormat,
    "toDate": toDate,
    "toYaml": toYaml,
    "fromYaml": fromYaml,
    "toJson": toJson,
    "toPrettyJson": toPrettyJson,
    "fromJson": fromJson,
    "b64enc": b64enc,
    "b64dec": b64dec,
    "sha256sum": sha256sum,
    "hasKey": hasKey,
    "keys": keys,
    "pick": pick,
    "omit": omit,
    "merge": merge,
    "dig": dig,
    "empty": empty,
    "coalesce": coalesce,
    "ternary": ternary,
    "uniq": uniq,
    "compact": compact,
    "list": list_,
}


# =============================================================================
# Fail-fast
# =============================================================================


def required(value: Any, message: str = "value is required") -> Any:
    """Return `value`, aborting the render when it is null, undefined or ""."""
    if _is_nil(value) or value == "":
        raise RequiredValueError(message)
    return value


def fail(message: str) -> None:
    raise RequiredValueError(message)


FAIL_FAST_FUNCTIONS: Dict[str, Callable] = {
    "required": required,
    "fail": fail,
}


# =============================================================================
# Environment
# =============================================================================


def rand_alpha_num(length: int) -> str:
    chars = string.ascii_letters + string.digits
    return "".join(secrets.choice(chars) for _ in range(_int(length)))


def environment_functions(lookup: Optional[ResourceLookup] = None) -> Dict[str, Callable]:
    """Functions that read the cluster, the clock or randomness."""

    def lookup_resource(api_version: str, kind: str, namespace: str = "", name: str = "") -> dict:
        if lookup is None:
            return {}
        try:
            return lookup.lookup(api_version, kind, namespace, name)
        except RenderError:
            raise
        except Exception as e:
            raise ResourceLookupError(
                f"lookup of {kind} {namespace}/{name} ({api_version}) failed: {e}"
            ) from e

    return {
        "lookup": lookup_resource,
        "now": lambda: datetime.now(timezone.utc),
        "randAlphaNum": rand_alpha_num,
        "uuidv4": lambda: str(uuid.uuid4()),
    }


# =============================================================================
# Template
# =============================================================================

_CURRENT_SCOPE = object()


def template_functions(session: TemplateSession) -> Dict[str, Callable]:
    """`include` and `tpl`, defaulting the scope to the caller's `this`."""

    @pass_context
    def include(context, name: str, scope: Any = _CURRENT_SCOPE) -> str:
        if scope is _CURRENT_SCOPE:
            scope = context.get("this")
        return session.include(name, scope)

    @pass_context
    def tpl(context, text: Any, scope: Any = _CURRENT_SCOPE) -> str:
        if scope is _CURRENT_SCOPE:
            scope = context.get("this")
        return session.tpl(_s(text), scope)

    return {"include": include, "tpl": tpl}


def install_functions(
    env: Environment,
    session: TemplateSession,
    sandbox: bool = True,
    lookup: Optional[ResourceLookup] = None,
) -> None:
    """Register the function library as globals and filters of `env`.

    In sandbox mode the environment group is not registered at all, so
    templates can test for it with ``lookup is defined``.
    """
    groups = [PURE_FUNCTIONS, FAIL_FAST_FUNCTIONS]
    if sandbox:
        logger.debug("Sandbox mode: environment functions disabled")
    else:
        groups.append(environment_functions(lookup))

    for group in groups:
        for name, fn in group.items():
            env.globals[name] = fn
            if name not in env.filters or name in _OVERRIDDEN_FILTERS:
                env.filters[name] = fn

    tmpl = template_functions(session)
    env.globals.update(tmpl)
    env.filters["tpl"] = tmpl["tpl"]
