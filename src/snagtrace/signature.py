"""Method-signature rendering.

Turns a callable (or the frame executing it) into a readable signature::

    package.module.Class.method(String name, Int32 count, UInt32[] rest)

Primitive types render under canonical names (``String``, ``Int64``,
``UInt32``, ...), other classes under their simple ``__name__``.  ctypes
scalar types and numpy-style scalar names map by signedness and width.
"""

from __future__ import annotations

import ctypes
import inspect
import re
import sys
import types
import typing
from typing import Any, TypeVar

from snagtrace.models import MethodMetadata, ParameterDescriptor

_RECEIVER_NAMES = frozenset({"self", "cls"})

_OBJECT_TYPE_NAME = "Object"

_IDENTIFIER = re.compile(r"[A-Za-z_][\w.]*")

_BUILTIN_NAMES: dict[str, str] = {
    "str": "String",
    "bool": "Boolean",
    "int": "Int64",
    "float": "Double",
    "complex": "Complex",
    "bytes": "Byte[]",
    "bytearray": "Byte[]",
    "object": "Object",
    "NoneType": "None",
}

# numpy scalar type names
_NUMPY_NAMES: dict[str, str] = {
    "int8": "SByte",
    "uint8": "Byte",
    "int16": "Int16",
    "uint16": "UInt16",
    "int32": "Int32",
    "uint32": "UInt32",
    "int64": "Int64",
    "uint64": "UInt64",
    "float16": "Half",
    "float32": "Single",
    "float64": "Double",
    "bool_": "Boolean",
    "str_": "String",
    "bytes_": "Byte[]",
}

_CTYPES_CODE_NAMES: dict[str, str] = {
    "?": "Boolean",
    "c": "Char",
    "u": "Char",
    "f": "Single",
    "d": "Double",
    "g": "Double",
    "z": "String",
    "Z": "String",
    "P": "IntPtr",
}


def _ctypes_names() -> dict[str, str]:
    """Map every ctypes scalar class name to its canonical display name."""
    names: dict[str, str] = {}
    for attr in dir(ctypes):
        if not attr.startswith("c_"):
            continue
        ctype = getattr(ctypes, attr)
        code = getattr(ctype, "_type_", None)
        if not isinstance(code, str):
            continue
        if code in _CTYPES_CODE_NAMES:
            display = _CTYPES_CODE_NAMES[code]
        elif code in "bBhHiIlLqQ":
            width = ctypes.sizeof(ctype) * 8
            unsigned = code.isupper()
            if width == 8:
                display = "Byte" if unsigned else "SByte"
            else:
                display = f"{'UInt' if unsigned else 'Int'}{width}"
        else:
            continue
        names[attr] = display
        names[ctype.__name__] = display
    return names


_CTYPES_NAMES: dict[str, str] = _ctypes_names()

_CANONICAL_NAMES: dict[str, str] = {**_NUMPY_NAMES, **_CTYPES_NAMES, **_BUILTIN_NAMES}


def _canonical_class_name(cls: type) -> str:
    module = getattr(cls, "__module__", "") or ""
    if module == "builtins":
        return _BUILTIN_NAMES.get(cls.__name__, cls.__name__)
    if module == "ctypes":
        return _CTYPES_NAMES.get(cls.__name__, cls.__name__)
    if module.split(".")[0] == "numpy":
        return _NUMPY_NAMES.get(cls.__name__, cls.__name__)
    return cls.__name__


def _display_identifier(match: re.Match[str]) -> str:
    simple = match.group(0).rsplit(".", 1)[-1]
    return _CANONICAL_NAMES.get(simple, simple)


def _display_string_annotation(annotation: str) -> str:
    """Map every (dotted) name in an unevaluated annotation to its display name."""
    annotation = annotation.strip()
    if len(annotation) >= 2 and annotation[0] == annotation[-1] and annotation[0] in "'\"":
        annotation = annotation[1:-1].strip()
    if not annotation:
        return _OBJECT_TYPE_NAME
    return _IDENTIFIER.sub(_display_identifier, annotation)


def display_type_name(annotation: Any) -> str:
    """Return the display name of a parameter annotation."""
    if annotation is inspect.Parameter.empty:
        return _OBJECT_TYPE_NAME
    if annotation is None:
        return "None"
    if isinstance(annotation, str):
        return _display_string_annotation(annotation)
    if isinstance(annotation, TypeVar):
        return annotation.__name__
    if isinstance(annotation, list):
        return "[" + ", ".join(display_type_name(arg) for arg in annotation) + "]"
    if annotation is Ellipsis:
        return "..."

    origin = typing.get_origin(annotation)
    if origin is not None:
        args = typing.get_args(annotation)
        if origin is typing.Union or origin is types.UnionType:
            return " | ".join(display_type_name(arg) for arg in args)
        if origin is typing.Annotated:
            return display_type_name(args[0])
        name = display_type_name(origin)
        if not args:
            return name
        return f"{name}[{', '.join(display_type_name(arg) for arg in args)}]"

    if isinstance(annotation, type):
        return _canonical_class_name(annotation)

    name = getattr(annotation, "__name__", None) or getattr(annotation, "_name", None)
    if isinstance(name, str):
        return name
    return str(annotation)


def _declaring_type(module: str | None, qualname: str) -> str | None:
    owner = qualname.rsplit(".", 1)[0] if "." in qualname else ""
    if module and owner:
        return f"{module}.{owner}"
    return module or owner or None


def _has_receiver(qualname: str, first_param: str | None) -> bool:
    """Whether the first parameter is the implicit ``self`` / ``cls`` of a method."""
    if first_param not in _RECEIVER_NAMES or "." not in qualname:
        return False
    return qualname.rsplit(".", 2)[-2] != "<locals>"


def _signature(func: Any) -> inspect.Signature | None:
    # evaluating string annotations runs arbitrary expressions
    try:
        return inspect.signature(func, follow_wrapped=False, eval_str=True)
    except Exception:
        pass
    try:
        return inspect.signature(func, follow_wrapped=False)
    except Exception:
        return None


def _parameters(sig: inspect.Signature, skip_receiver: bool) -> tuple[ParameterDescriptor, ...]:
    params = list(sig.parameters.values())
    if skip_receiver and params:
        params = params[1:]

    result = []
    for param in params:
        type_name = display_type_name(param.annotation)
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            result.append(ParameterDescriptor(type_name, param.name, is_variadic=True))
        elif param.kind is inspect.Parameter.VAR_KEYWORD:
            result.append(ParameterDescriptor(f"Dict[String, {type_name}]", param.name))
        else:
            result.append(ParameterDescriptor(type_name, param.name))
    return tuple(result)


def _unwrap_descriptor(obj: Any) -> Any:
    if isinstance(obj, (classmethod, staticmethod)):
        return obj.__func__
    if isinstance(obj, property):
        return obj.fget
    if inspect.ismethod(obj):
        return obj.__func__
    return obj


def _declared_static(target: Any) -> bool:
    """Whether *target* is stored as a ``staticmethod`` on its owning class."""
    qualname = getattr(target, "__qualname__", None)
    module = sys.modules.get(getattr(target, "__module__", None) or "")
    if not isinstance(qualname, str) or "<locals>" in qualname or module is None:
        return False
    parts = qualname.split(".")
    if len(parts) < 2:
        return False
    owner: Any = module
    for part in parts[:-1]:
        owner = inspect.getattr_static(owner, part, None)
        if owner is None:
            return False
    if not isinstance(owner, type):
        return False
    return isinstance(owner.__dict__.get(parts[-1]), staticmethod)


def metadata_from_callable(func: Any, *, static: bool | None = None) -> MethodMetadata | None:
    """Build :class:`MethodMetadata` from a function, method or builtin.

    *static* tells whether the function is a ``staticmethod``; when ``None``
    it is looked up on the owning class.  Returns ``None`` for objects that
    are not callables with a name.
    """
    if func is None:
        return None
    bound = inspect.ismethod(func)
    if isinstance(func, staticmethod):
        static = True
    target = _unwrap_descriptor(func)
    if not callable(target) or isinstance(target, type):
        return None

    name = getattr(target, "__name__", None)
    if not isinstance(name, str):
        return None
    qualname = getattr(target, "__qualname__", name)
    module = getattr(target, "__module__", None)

    sig = _signature(func if bound else target)
    if sig is None:
        parameters: tuple[ParameterDescriptor, ...] = ()
    else:
        skip_receiver = False
        if not bound:
            first = next(iter(sig.parameters), None)
            if _has_receiver(qualname, first):
                skip_receiver = not (_declared_static(target) if static is None else static)
        parameters = _parameters(sig, skip_receiver=skip_receiver)

    return MethodMetadata(_declaring_type(module, qualname), name, parameters)


def _function_with_code(obj: Any, code: types.CodeType) -> tuple[Any, bool]:
    """Follow descriptors and ``__wrapped__`` until a function running *code* is found.

    Returns the function and whether a ``staticmethod`` was unwrapped on
    the way, or ``(None, False)``.
    """
    static = False
    for _ in range(32):
        static = static or isinstance(obj, staticmethod)
        obj = _unwrap_descriptor(obj)
        if obj is None:
            break
        if getattr(obj, "__code__", None) is code:
            return obj, static
        obj = getattr(obj, "__wrapped__", None)
    return None, False


def _resolve_function(frame: types.FrameType) -> tuple[Any, bool]:
    code = frame.f_code
    f_globals = frame.f_globals
    qualname: str = getattr(code, "co_qualname", code.co_name)

    if "<locals>" not in qualname:
        parts = qualname.split(".")
        obj: Any = f_globals.get(parts[0])
        for part in parts[1:]:
            if obj is None:
                break
            obj = inspect.getattr_static(obj, part, None)
        found, static = _function_with_code(obj, code)
        if found is not None:
            return found, static

    f_locals = frame.f_locals
    for receiver_name in ("self", "cls"):
        if receiver_name not in f_locals:
            continue
        receiver = f_locals[receiver_name]
        owner = receiver if isinstance(receiver, type) else type(receiver)
        for klass in owner.__mro__:
            found, static = _function_with_code(klass.__dict__.get(code.co_name), code)
            if found is not None:
                return found, static

    return _function_with_code(f_globals.get(code.co_name), code)


def _metadata_from_code(code: types.CodeType, module: str | None) -> MethodMetadata:
    """Fallback for frames whose function object cannot be found."""
    qualname: str = getattr(code, "co_qualname", code.co_name)
    argcount = code.co_argcount + code.co_kwonlyargcount
    names = list(code.co_varnames[:argcount])
    skip_receiver = bool(names) and _has_receiver(qualname, names[0])
    if skip_receiver:
        names = names[1:]

    parameters = [ParameterDescriptor(_OBJECT_TYPE_NAME, name) for name in names]
    index = argcount
    if code.co_flags & inspect.CO_VARARGS:
        parameters.append(
            ParameterDescriptor(_OBJECT_TYPE_NAME, code.co_varnames[index], is_variadic=True)
        )
        index += 1
    if code.co_flags & inspect.CO_VARKEYWORDS:
        parameters.append(
            ParameterDescriptor(f"Dict[String, {_OBJECT_TYPE_NAME}]", code.co_varnames[index])
        )
    return MethodMetadata(_declaring_type(module, qualname), code.co_name, tuple(parameters))


def metadata_from_frame(frame: Any) -> MethodMetadata | None:
    """Build :class:`MethodMetadata` for the code a frame is executing.

    Accepts a frame, a traceback entry or an :class:`inspect.FrameInfo`.
    """
    if isinstance(frame, types.TracebackType):
        frame = frame.tb_frame
    elif isinstance(frame, inspect.FrameInfo):
        frame = frame.frame
    if not isinstance(frame, types.FrameType):
        return None

    code = frame.f_code
    module = frame.f_globals.get("__name__")
    func, static = _resolve_function(frame)
    if func is not None:
        metadata = metadata_from_callable(func, static=True if static else None)
        if metadata is not None:
            return metadata
    return _metadata_from_code(code, module if isinstance(module, str) else None)


def _render_parameter(param: ParameterDescriptor) -> str:
    type_name = f"{param.type_name}[]" if param.is_variadic else param.type_name
    return f"{type_name} {param.name}"


def generate_method_signature(method: Any) -> str | None:
    """Render ``Namespace.Type.method(Type1 name1, Type2 name2)``.

    *method* may be a :class:`MethodMetadata`, a callable, a frame object or
    ``None``.  Returns ``None`` when no method can be resolved.
    """
    if method is None:
        return None
    if isinstance(method, MethodMetadata):
        metadata: MethodMetadata | None = method
    elif isinstance(method, (types.FrameType, types.TracebackType, inspect.FrameInfo)):
        metadata = metadata_from_frame(method)
    else:
        metadata = metadata_from_callable(method)
    if metadata is None:
        return None

    params = ", ".join(_render_parameter(param) for param in metadata.parameters)
    prefix = f"{metadata.declaring_type}." if metadata.declaring_type else ""
    return f"{prefix}{metadata.name}({params})"
