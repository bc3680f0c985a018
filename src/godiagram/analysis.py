"""Post-extraction analysis (change fingerprints, etc.)."""

from __future__ import annotations

from godiagram.model import Model

# package -> file -> struct -> sorted (field name, field type text) pairs
Fingerprint = dict[str, dict[str, dict[str, tuple[tuple[str, str], ...]]]]


def fingerprint(model: Model | None) -> Fingerprint:
    """Return the structural fingerprint of *model*.

    Only struct names, field names and field type text take part; field
    order within a struct, methods and free functions do not.
    """
    result: Fingerprint = {}
    if model is None:
        return result
    for pkg in model.packages:
        files = result.setdefault(pkg.name, {})
        for f in pkg.files:
            structs = files.setdefault(f.name, {})
            for st in f.structs:
                structs[st.name] = tuple(sorted((fd.name, fd.type.literal) for fd in st.fields))
    return result
