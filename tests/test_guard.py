from __future__ import annotations

import numpy as np
import pytest

from petrisim.errors import GuardError, InfeasibilityError
from petrisim.guard import Guard, check_markings, default_guards, federated_guard, simulated_guards
from petrisim.place import Place


def _assertions(reference: object) -> list:
    return [guard.assertion for guard in default_guards(reference)]


def test_default_guards_follow_reference_type() -> None:
    assert _assertions(1.5) == ["should be Numeric", "should not be complex", "should not be negative"]
    assert _assertions(3) == ["should be Numeric", "should not be complex", "should not be negative"]
    assert _assertions(1 + 2j) == ["should be Numeric"]
    assert _assertions(True) == ["should be Boolean"]
    assert _assertions("token") == ["should be a str"]
    assert _assertions(None) == []


def test_numeric_guards_reject_wrong_values() -> None:
    guard = federated_guard(default_guards(1.0), "A")
    assert guard(2) == 2
    with pytest.raises(InfeasibilityError, match="should not be negative"):
        guard(-0.5)
    with pytest.raises(GuardError, match="should not be complex"):
        guard(1 + 1j)
    with pytest.raises(GuardError, match="should be Numeric"):
        guard("one")
    with pytest.raises(GuardError, match="should be Numeric"):
        guard(True)


def test_boolean_and_class_guards() -> None:
    boolean = federated_guard(default_guards(False))
    assert boolean(True) is True
    with pytest.raises(GuardError):
        boolean(1)
    typed = federated_guard(default_guards("x"))
    with pytest.raises(GuardError, match="should be a str"):
        typed(3)


def test_guard_passes_on_none_and_fails_on_falsy_results() -> None:
    lenient = Guard("may be anything", lambda m: None)
    assert lenient.validate(-1) == -1
    strict = Guard("should be even", lambda m: m % 2 == 0)
    with pytest.raises(GuardError) as excinfo:
        strict.validate(3, Place("X", marking=2))
    assert str(excinfo.value) == "Marking 3:int of place X should be even!"


def test_numpy_boolean_results_are_honoured() -> None:
    guard = Guard("should be below 5", lambda m: m < 5)
    assert guard.validate(np.float64(4.0)) == 4.0
    with pytest.raises(GuardError, match="below 5"):
        guard.validate(np.float64(11.0))


def test_simulated_boolean_guard_accepts_zero_and_one() -> None:
    guards = simulated_guards(default_guards(True))
    assert [g.assertion for g in guards] == ["should be 0 or 1"]
    closure = federated_guard(guards)
    assert closure(np.float64(1.0)) == 1.0
    assert closure(0.0) == 0.0
    assert closure(True) is True
    with pytest.raises(GuardError, match="0 or 1"):
        closure(0.5)


def test_predicate_may_raise_guard_error_itself() -> None:
    def predicate(value: float) -> bool:
        if value > 100:
            raise GuardError("too large")
        return True

    guard = Guard("should be small", predicate)
    with pytest.raises(GuardError, match="too large"):
        guard.validate(101)


def test_federated_guard_ignores_later_additions() -> None:
    guards = default_guards(1.0)
    closure = federated_guard(guards)
    guards.append(Guard("should be below 10", lambda m: m < 10))
    assert closure(50) == 50


def test_check_markings_names_every_offender() -> None:
    a, b, c = Place("A", marking=1.0), Place("B", marking=1.0), Place("C", marking=1.0)
    check_markings("Test", [a, b], [0.0, 2.0])
    with pytest.raises(InfeasibilityError) as excinfo:
        check_markings("Test", [a, b, c], [-1.0, 2.0, -2.0])
    message = str(excinfo.value)
    assert "'A': -1.0" in message and "'C': -2.0" in message
    assert "B" not in message.split("places:")[1]
    with pytest.raises(GuardError) as mixed:
        check_markings("Test", [a, b], [-1.0, "bad"])
    assert not isinstance(mixed.value, InfeasibilityError)
    with pytest.raises(InfeasibilityError, match="rejects marking -1.0 of place A!"):
        check_markings("Test", [a], [-1.0])
