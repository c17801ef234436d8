from __future__ import annotations

from typing import Tuple

import pytest

from petrisim.errors import ConstructionError, FiringError, InfeasibilityError
from petrisim.place import Place
from petrisim.transition import Cocking, Transition, TransitionKind, standard_mass_action


def _make_places(*markings: float) -> Tuple[Place, ...]:
    return tuple(Place(f"p{idx + 1}", default_marking=m) for idx, m in enumerate(markings))


def test_kind_flags() -> None:
    assert TransitionKind.SR.stoichiometric and TransitionKind.SR.timed and TransitionKind.SR.has_rate
    assert not TransitionKind.ts.timed and not TransitionKind.ts.stoichiometric
    assert TransitionKind.TSr.timed and not TransitionKind.TSr.has_rate
    assert TransitionKind.A.assignment and not TransitionKind.A.timed


def test_timeless_transition_fires_only_when_cocked() -> None:
    p1, p2, p3 = _make_places(1.0, 2.0, 3.0)
    t = Transition.timeless("T1", codomain=[p1, p3], action=lambda a: [a, a], domain=[p2])
    assert t.kind is TransitionKind.ts
    assert t.basic_type == "ts"
    assert t.action() == [2.0, 2.0]
    assert t.cocking is Cocking.UNCOCKED
    assert t.fire() is False
    assert (p1.marking, p3.marking) == (1.0, 3.0)
    t.cock()
    assert t.fire() is True
    assert (p1.marking, p3.marking) == (3.0, 5.0)
    assert not t.cocked
    assert t.fire(force=True) is True
    assert (p1.marking, p3.marking) == (5.0, 7.0)


def test_domain_inferred_from_closure_arity() -> None:
    p1, p2, p3 = _make_places(1.0, 2.0, 3.0)
    assert Transition.timeless("T", codomain=[p1, p3], action=lambda a, b: [a, b]).domain == (p1, p3)
    assert Transition.timeless("T", codomain=[p1, p3], action=lambda: [1, 1]).domain == ()
    with pytest.raises(ConstructionError, match="arity"):
        Transition.timeless("T", codomain=[p1, p3], action=lambda a: [a, a])
    with pytest.raises(ConstructionError, match="variadic"):
        Transition.timeless("T", codomain=[p1], action=lambda *args: 1)


def test_stoichiometric_domain_prefers_reactants() -> None:
    b, c = _make_places(10.0, 0.0)
    t = Transition.timeless_stoichiometric("T", stoichiometry={b: -1, c: 1}, action=lambda m: 1 if m >= 1 else 0)
    assert t.domain == (b,)
    both = Transition.timeless_stoichiometric("U", stoichiometry={b: -1, c: 1}, action=lambda x, y: 1)
    assert both.domain == (b, c)


def test_functionless_transition_fires_once_per_call() -> None:
    (p1,) = _make_places(1.0)
    t = Transition.timeless_stoichiometric("T", stoichiometry={p1: 1})
    assert t.functionless and t.domain == ()
    assert t.fire() is False
    assert p1.marking == 1.0
    t.fire(force=True)
    assert p1.marking == 2.0


def test_sequence_stoichiometry_needs_matching_codomain() -> None:
    p1, p2 = _make_places(1.0, 2.0)
    t = Transition.timeless_stoichiometric("T", stoichiometry=[-1, 1], codomain=[p1, p2])
    assert t.codomain == (p1, p2)
    assert t.stoichiometry == (-1, 1)
    with pytest.raises(ConstructionError):
        Transition.timeless_stoichiometric("T", stoichiometry=[1, 2], codomain=[p1])
    with pytest.raises(ConstructionError):
        Transition.timeless_stoichiometric("T", stoichiometry=[1])


def test_duplicate_codomain_is_rejected() -> None:
    (p1,) = _make_places(1.0)
    with pytest.raises(ConstructionError, match="duplicate"):
        Transition.timeless("T", codomain=[p1, p1], action=lambda: [1, 1])


def test_mass_action_rate_and_forced_firing() -> None:
    p1, p2, p3 = _make_places(1.1, 2.2, 3.3)
    t = Transition.stoichiometric_with_rate("T1", stoichiometry={p1: 1, p2: -1, p3: -1}, rate=0.01)
    assert t.kind is TransitionKind.SR
    assert t.domain == (p2, p3)
    assert t.rate_closure(2.2, 3.3) == pytest.approx(2.2 * 3.3 * 0.01)
    t.fire(1, force=True)
    assert [p.marking for p in (p1, p2, p3)] == pytest.approx([1.1726, 2.1274, 3.2274])


def test_standard_mass_action_raises_to_higher_coefficients() -> None:
    rate = standard_mass_action(2.0, [-2, 1, -1])
    assert rate(3.0, 5.0) == pytest.approx(2.0 * 9.0 * 5.0)


def test_numeric_rate_rejects_explicit_domain() -> None:
    p1, p2 = _make_places(1.0, 2.0)
    with pytest.raises(ConstructionError):
        Transition.stoichiometric_with_rate("T", stoichiometry={p1: -1}, rate=0.1, domain=[p2])


def test_numeric_rate_without_stoichiometry_needs_single_codomain() -> None:
    p1, p2 = _make_places(1.0, 2.0)
    with pytest.raises(ConstructionError):
        Transition.with_rate("T", codomain=[p1, p2], rate=1.0)
    t = Transition.with_rate("T", codomain=[p1], rate=2.0)
    assert t.kind is TransitionKind.sR
    assert t.action(0.5) == [1.0]


def test_timed_transition_needs_delta_time() -> None:
    (p1,) = _make_places(1.0)
    t = Transition.with_rate("T", codomain=[p1], rate=2.0)
    with pytest.raises(FiringError):
        t.fire(force=True)


def test_timed_rateless_closures_take_delta_time_first() -> None:
    p1, p2 = _make_places(1.0, 2.0)
    t = Transition.timed_rateless("T", codomain=[p1], action=lambda dt, a: a * dt, domain=[p2])
    assert t.action(0.5) == [1.0]
    s = Transition.timed_rateless_stoichiometric("S", stoichiometry={p1: -1, p2: 1}, action=lambda dt, a: a * dt)
    assert s.domain == (p1,)
    assert s.action(0.5) == [-0.5, 0.5]
    with pytest.raises(ConstructionError):
        Transition.timed_rateless("U", codomain=[p1], action=lambda: 1)


def test_illegal_firing_writes_nothing() -> None:
    p1, p2 = _make_places(1.0, 2.0)
    t = Transition.timeless_stoichiometric("T", stoichiometry={p1: -5, p2: 1})
    assert not t.enabled()
    with pytest.raises(InfeasibilityError, match="p1"):
        t.fire(force=True)
    assert (p1.marking, p2.marking) == (1.0, 2.0)


def test_rejected_firing_keeps_the_transition_cocked() -> None:
    (a,) = _make_places(0.0)
    drain = Transition.timeless("drain", codomain=[a], action=lambda: [-1.0])
    drain.cock()
    with pytest.raises(InfeasibilityError, match="p1"):
        drain.fire()
    assert drain.cocked
    assert a.marking == 0.0
    with pytest.raises(InfeasibilityError):
        drain.fire_downstream_recursively()
    with pytest.raises(InfeasibilityError):
        drain.fire_upstream_recursively()
    assert drain.cocked
    a.marking = 2.0
    assert drain.fire() is True
    assert not drain.cocked and a.marking == 1.0


def test_assignment_replaces_codomain_marking() -> None:
    p1, _, p3 = _make_places(1.0, 2.0, 3.0)
    t = Transition.assignment("A", codomain=[p3], action=lambda a: a * 10, domain=[p1])
    assert t.assignment_action and t.enabled()
    t.fire(force=True)
    assert p3.marking == 10.0


def test_textual_rate_with_parameters() -> None:
    p1, p2 = _make_places(2.0, 0.0)
    t = Transition.stoichiometric_with_rate(
        "T", stoichiometry={p1: -1, p2: 1}, rate="k*p1", parameters={"k": 0.5}
    )
    assert t.domain == (p1,)
    assert t.rate_closure(2.0) == pytest.approx(1.0)
    assert t.action(1.0) == pytest.approx([-1.0, 1.0])


def test_tagged_build_dispatches_on_kind() -> None:
    (p1,) = _make_places(1.0)
    assert Transition.build("SR", "T", stoichiometry={p1: -1}, rate=0.1).kind is TransitionKind.SR
    assert Transition.build(TransitionKind.A, "A", codomain=[p1], action=lambda: 0.0).kind is TransitionKind.A
    with pytest.raises(ConstructionError, match="Unknown transition kind"):
        Transition.build("XX", "T")
    with pytest.raises(ConstructionError):
        Transition.build("ts", "T", codomain=[p1], rate=1.0)


def test_domain_guard_names_failing_place() -> None:
    p1, p2, p3 = _make_places(1.0, 2.0, 3.0)
    t = Transition.timeless("T1", codomain=[p1, p3], action=lambda a: [a, a], domain=[p2])
    assert t.domain_guard([1.0]) == [1.0]
    with pytest.raises(InfeasibilityError, match="p2"):
        t.domain_guard([-1.0])


def test_recursive_firing_terminates_on_cycles() -> None:
    a = Place("A", default_marking=2.0)
    b = Place("B", default_marking=5.0)
    forward = Transition.timeless_stoichiometric("T1", stoichiometry={a: -1, b: 1}, action=lambda x: 1)
    backward = Transition.timeless_stoichiometric("T2", stoichiometry={b: -1, a: 1}, action=lambda x: 1)
    assert forward.fire_downstream_recursively() is False
    forward.cock()
    backward.cock()
    assert forward.fire_downstream_recursively() is True
    assert (a.marking, b.marking) == (2.0, 5.0)
    assert not forward.cocked and not backward.cocked


def test_token_game_transfer_and_decay() -> None:
    a, b = Place("A", default_marking=2), Place("B", default_marking=5)
    a2b = Transition.timeless_stoichiometric("A2B", stoichiometry={a: -1, b: 1})
    a2b.fire(force=True)
    assert (a.marking, b.marking) == (1, 6)

    c = Place("C", default_marking=7.77)
    decay = Transition.stoichiometric_with_rate("C_decay", stoichiometry={c: -1}, rate=0.05)
    decay.fire(1, force=True)
    decay.fire(1, force=True)
    decay.fire(0.1, force=True)
    for _ in range(200):
        decay.fire(1, force=True)
    assert c.marking == pytest.approx(0.00024, abs=1e-5)
