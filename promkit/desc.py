"""Metric descriptors: the immutable metadata of a metric."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from .collector import LabelPair, _quote
from .fnv import hash_add, hash_add_byte, hash_new

SEPARATOR_BYTE = 0xFF

_METRIC_NAME_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")


class DescError(ValueError):
    """A problem found while building a descriptor."""


def _is_valid_metric_name(name: str) -> bool:
    return bool(name) and _METRIC_NAME_RE.fullmatch(name) is not None


def _is_valid_label_name(name: str) -> bool:
    return bool(name) and _LABEL_NAME_RE.fullmatch(name) is not None


def _is_valid_utf8(text: str) -> bool:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


class Desc:
    """Descriptor of a metric.

    Construction problems are recorded in ``error`` rather than raised, so
    that they can be reported when the owning collector is registered.
    """

    def __init__(
        self,
        fq_name: str,
        help: str,
        variable_labels: Iterable[str] | None = None,
        const_labels: Mapping[str, str] | None = None,
    ) -> None:
        self.fq_name = fq_name
        self.help = help
        self.variable_labels: tuple[str, ...] = tuple(variable_labels or ())
        self.const_label_pairs: tuple[LabelPair, ...] = ()
        self.id = 0
        self.dim_hash = 0
        self.error: Exception | None = None
        try:
            self._build(dict(const_labels or {}))
        except DescError as exc:
            self.error = exc

    def _build(self, const_labels: dict[str, str]) -> None:
        fq_name = self.fq_name
        if not _is_valid_metric_name(fq_name):
            raise DescError(f"{_quote(fq_name)} is not a valid metric name")

        for name in const_labels:
            if not _is_valid_label_name(name):
                raise DescError(
                    f"{_quote(name)} is not a valid label name for metric {_quote(fq_name)}"
                )
        const_names = sorted(const_labels)
        label_values = [fq_name, *(const_labels[name] for name in const_names)]
        for value in label_values:
            if not _is_valid_utf8(value):
                raise DescError(f"label value {_quote(value)} is not valid UTF-8")

        label_names = list(const_names)
        name_set = set(const_names)
        for name in self.variable_labels:
            if not _is_valid_label_name(name):
                raise DescError(
                    f"{_quote(name)} is not a valid label name for metric {_quote(fq_name)}"
                )
            # The prefix keeps variable names apart from const names in the hash.
            label_names.append("$" + name)
            name_set.add(name)
        if len(label_names) != len(name_set):
            raise DescError("duplicate label names")

        value_hash = hash_new()
        for value in label_values:
            value_hash = hash_add_byte(hash_add(value_hash, value), SEPARATOR_BYTE)
        self.id = value_hash

        dim_hash = hash_add_byte(hash_add(hash_new(), self.help), SEPARATOR_BYTE)
        for name in sorted(label_names):
            dim_hash = hash_add_byte(hash_add(dim_hash, name), SEPARATOR_BYTE)
        self.dim_hash = dim_hash

        self.const_label_pairs = tuple(
            sorted(LabelPair(name, value) for name, value in const_labels.items())
        )

    def __str__(self) -> str:
        const = ",".join(str(pair) for pair in self.const_label_pairs)
        variable = " ".join(self.variable_labels)
        return (
            f"Desc{{fqName: {_quote(self.fq_name)}, help: {_quote(self.help)}, "
            f"constLabels: {{{const}}}, variableLabels: [{variable}]}}"
        )

    def __repr__(self) -> str:
        return str(self)


def new_invalid_desc(error: Exception) -> Desc:
    """Return a descriptor that carries ``error`` and nothing else."""
    desc = Desc("", "")
    desc.error = error
    return desc