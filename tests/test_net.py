from __future__ import annotations

from typing import Tuple

import pytest

from petrisim.errors import ConstructionError
from petrisim.net import Net
from petrisim.place import Place
from petrisim.simulation import Simulation
from petrisim.transition import Transition, TransitionKind


def _make_net() -> Tuple[Net, Place, Place, Transition]:
    a = Place("A", default_marking=1.0)
    b = Place("B", default_marking=0.0)
    t = Transition.stoichiometric_with_rate("T", stoichiometry={a: -1, b: 1}, rate=0.1)
    return Net("decay", places=[a, b], transitions=[t]), a, b, t


def test_net_lookup_by_object_and_name() -> None:
    net, a, _, t = _make_net()
    assert net.includes_place(a) and net.includes_place("A")
    assert net.includes_transition(t) and net.includes_transition("T")
    assert a in net and "T" in net and "Z" not in net
    assert net.place("B").name == "B"
    assert net.transition("T") is t
    assert net.transitions_of_kind("SR") == (t,)
    assert net.transitions_of_kind(TransitionKind.ts) == ()
    with pytest.raises(KeyError):
        net.place("Z")


def test_including_twice_is_a_no_op() -> None:
    net, a, _, t = _make_net()
    assert net.include(a) is False
    assert net.include(t) is False
    assert len(net.places) == 2


def test_place_names_are_unique() -> None:
    net, _, _, _ = _make_net()
    with pytest.raises(ConstructionError, match="another place"):
        net.include_place(Place("A", default_marking=3.0))


def test_transition_arcs_must_stay_inside_the_net() -> None:
    a = Place("A", default_marking=1.0)
    outside = Place("X", default_marking=1.0)
    t = Transition.stoichiometric_with_rate("T", stoichiometry={a: -1, outside: 1}, rate=0.1)
    net = Net(places=[a])
    with pytest.raises(ConstructionError, match="outside"):
        net.include_transition(t)


def test_referenced_place_cannot_be_excluded() -> None:
    net, a, _, t = _make_net()
    with pytest.raises(ConstructionError, match="depend"):
        net.exclude_place(a)
    assert net.exclude_transition(t) is True
    assert net.exclude_place(a) is True
    assert [p.name for p in net.places] == ["B"]


def test_failed_net_exclusion_changes_nothing() -> None:
    net, a, b, t = _make_net()
    other = Net(places=[a, b])
    with pytest.raises(ConstructionError, match="depend"):
        net.exclude_net(other)
    assert net.places == (a, b)
    assert net.transitions == (t,)
    assert net.exclude_net(Net(places=[a, b], transitions=[t])) is True
    assert net.places == () and net.transitions == ()


def test_merge_and_difference() -> None:
    net, a, b, t = _make_net()
    c = Place("C", default_marking=2.0)
    other = Net(places=[c])
    merged = net + other
    assert [p.name for p in merged.places] == ["A", "B", "C"]
    assert merged.transitions == (t,)
    assert [p.name for p in (merged - other).places] == ["A", "B"]
    assert (net - net).places == ()
    assert net.merge(other) is True
    assert net.merge(other) is False


def test_equality_is_by_member_identity() -> None:
    a = Place("A", default_marking=1.0)
    assert Net(places=[a]) == Net(places=[a])
    assert Net(places=[a]) != Net(places=[Place("A", default_marking=1.0)])


def test_timed_and_functional_flags() -> None:
    net, a, b, _ = _make_net()
    assert net.timed and net.functional
    c = Place("C", default_marking=0.0)
    tick = Transition.timeless_stoichiometric("tick", stoichiometry={c: 1})
    timeless = Net(places=[c], transitions=[tick])
    assert not timeless.timed
    assert not timeless.functional


def test_simulation_shortcut_passes_settings() -> None:
    net, _, _, _ = _make_net()
    sim = net.simulation(step=0.5, time=(0, 10))
    assert isinstance(sim, Simulation)
    assert sim.settings.step == 0.5
    assert sim.settings.target_time == 10.0
