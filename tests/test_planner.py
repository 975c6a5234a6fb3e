from ncr.diff import diff
from ncr.models import DesiredState, DropIn, File, InlineContent, Unit
from ncr.planner import Action, Phase, plan, should_cancel

UNIT_DIR = "/etc/systemd/system"


def _state(files=(), units=()) -> DesiredState:
    s = DesiredState()
    for f in files:
        s.files[f.path] = f
    for u in units:
        s.units[u.name] = u
        for f in u.files:
            s.files[f.path] = f
    return s


def _plan(desired, applied, resolver, own_unit="ncr.service"):
    return plan(diff(desired, applied, resolver), own_unit=own_unit, unit_dir=UNIT_DIR)


def test_new_file_and_unit_from_empty_state(resolver):
    desired = _state(
        files=[File(path="/a", content=InlineContent(data="x"), permissions=0o640)],
        units=[Unit(name="svc", enable=True, command="start", content="C")],
    )

    p = _plan(desired, DesiredState(), resolver)

    assert p.actions() == [
        ("write-file", "/a"),
        ("write-file", "/etc/systemd/system/svc"),
        ("enable-unit", "svc"),
        ("reload-manager", ""),
        ("start-unit", "svc"),
    ]
    write_a = p.steps[0]
    assert write_a.data == b"x" and write_a.mode == 0o640
    assert p.steps[1].data == b"C" and p.steps[1].mode == 0o600
    assert p.cancel is False


def test_enable_only_change_is_a_single_step(resolver):
    applied = _state(units=[Unit(name="svc", enable=False, command="start", content="C")])
    desired = _state(units=[Unit(name="svc", enable=True, command="start", content="C")])

    assert _plan(desired, applied, resolver).actions() == [("enable-unit", "svc")]


def test_reload_only_when_definitions_change(resolver):
    applied = _state(units=[Unit(name="a", enable=True, content="#a"), Unit(name="b", command="stop", content="#b")])
    desired = _state(units=[Unit(name="a", enable=False, content="#a"), Unit(name="b", command="start", content="#b")])

    p = _plan(desired, applied, resolver)

    assert p.phase(Phase.RELOAD) == []
    assert ("disable-unit", "a") in p.actions()
    assert ("restart-unit", "b") in p.actions()


def test_single_reload_for_many_changes(resolver):
    desired = _state(units=[Unit(name=f"u{i}", content=f"#{i}") for i in range(3)])
    p = _plan(desired, DesiredState(), resolver)
    assert [s.action for s in p.phase(Phase.RELOAD)] == [Action.RELOAD_MANAGER]


def test_units_without_enable_or_command_are_left_alone(resolver):
    desired = _state(units=[Unit(name="plain", content="#p")])
    p = _plan(desired, DesiredState(), resolver)
    assert p.actions() == [("write-file", "/etc/systemd/system/plain"), ("reload-manager", "")]


def test_modified_started_unit_restarts_and_stop_unit_stops(resolver):
    applied = _state(units=[
        Unit(name="web", command="start", content="#old"),
        Unit(name="batch", command="stop", content="#old"),
    ])
    desired = _state(units=[
        Unit(name="web", command="start", content="#new"),
        Unit(name="batch", command="stop", content="#new"),
    ])

    cmds = [(s.action.value, s.target) for s in _plan(desired, applied, resolver).phase(Phase.COMMANDS)]
    assert cmds == [("restart-unit", "web"), ("stop-unit", "batch")]


def test_embedded_file_change_restarts_without_reload(resolver):
    def unit(data):
        return Unit(name="app", enable=True, command="start", content="#app",
                    files=(File(path="/opt/app.conf", content=InlineContent(data=data)),))

    p = _plan(_state(units=[unit("new")]), _state(units=[unit("old")]), resolver)
    assert p.actions() == [("write-file", "/opt/app.conf"), ("restart-unit", "app")]


def test_own_unit_change_is_gated(resolver):
    applied = _state(units=[Unit(name="ncr.service", enable=True, command="start", content="#v1")])
    desired = _state(units=[
        Unit(name="ncr.service", enable=True, command="start", content="#v2"),
        Unit(name="other", command="start", content="#o"),
    ])

    cs = diff(desired, applied, resolver)
    p = plan(cs, own_unit="ncr.service", unit_dir=UNIT_DIR)

    assert should_cancel(cs, "ncr.service")
    assert p.cancel is True
    assert ("write-file", "/etc/systemd/system/ncr.service") in p.actions()
    assert ("reload-manager", "") in p.actions()
    commands = [(s.action.value, s.target) for s in p.phase(Phase.COMMANDS)]
    assert commands == [("start-unit", "other")]


def test_new_own_unit_is_enabled_but_not_started(resolver):
    desired = _state(units=[Unit(name="ncr.service", enable=True, command="start", content="#gna")])
    p = _plan(desired, DesiredState(), resolver)
    assert p.cancel is True
    assert p.actions() == [
        ("write-file", "/etc/systemd/system/ncr.service"),
        ("enable-unit", "ncr.service"),
        ("reload-manager", ""),
    ]


def test_unchanged_own_unit_does_not_cancel(resolver):
    s = _state(units=[Unit(name="ncr.service", enable=True, content="#v1")])
    cs = diff(s, s, resolver)
    assert not should_cancel(cs, "ncr.service")
    assert not should_cancel(cs, None)


def test_removed_unit_is_stopped_and_cleaned_up(resolver):
    applied = _state(units=[Unit(name="old", enable=True, command="start", content="#o",
                                 drop_ins=(DropIn("10-a.conf", "#a"), DropIn("20-b.conf", "#b")))])

    p = _plan(DesiredState(), applied, resolver)

    assert p.actions() == [
        ("delete-file", "/etc/systemd/system/old"),
        ("delete-file", "/etc/systemd/system/old.d/10-a.conf"),
        ("delete-file", "/etc/systemd/system/old.d/20-b.conf"),
        ("delete-dir", "/etc/systemd/system/old.d"),
        ("disable-unit", "old"),
        ("reload-manager", ""),
        ("stop-unit", "old"),
    ]


def test_removed_own_unit_is_never_stopped(resolver):
    applied = _state(units=[
        Unit(name="ncr.service", enable=True, command="start", content="#gna"),
        Unit(name="old", command="start", content="#o"),
    ])

    p = _plan(DesiredState(), applied, resolver)

    assert p.cancel is True
    assert ("disable-unit", "ncr.service") in p.actions()
    commands = [(s.action.value, s.target) for s in p.phase(Phase.COMMANDS)]
    assert commands == [("stop-unit", "old")]


def test_clearing_drop_ins_removes_the_directory(resolver):
    applied = _state(units=[Unit(name="u", enable=True, content="#u", drop_ins=(DropIn("d", "#d"),))])
    desired = _state(units=[Unit(name="u", enable=False, content="#u")])

    p = _plan(desired, applied, resolver)
    assert p.phase(Phase.FILES)[-1].action is Action.DELETE_DIR
    assert ("delete-file", "/etc/systemd/system/u.d/d") in p.actions()
    assert ("disable-unit", "u") in p.actions()


def test_removed_file_is_deleted(resolver):
    applied = _state(files=[File(path="/gone", content=InlineContent(data="x"))])
    assert _plan(DesiredState(), applied, resolver).actions() == [("delete-file", "/gone")]


def test_phases_are_strictly_ordered(resolver):
    applied = _state(
        files=[File(path="/old", content=InlineContent(data="x"))],
        units=[Unit(name="gone", enable=True, command="start", content="#g")],
    )
    desired = _state(
        files=[File(path="/new", content=InlineContent(data="y"))],
        units=[Unit(name="fresh", enable=True, command="start", content="#f", drop_ins=(DropIn("d", "#d"),))],
    )

    phases = [int(s.phase) for s in _plan(desired, applied, resolver).steps]
    assert phases == sorted(phases)


def test_empty_changeset_gives_empty_plan(resolver):
    s = _state(units=[Unit(name="u", enable=True, command="start", content="#u")])
    assert len(_plan(s, s, resolver)) == 0
