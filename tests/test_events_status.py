from ctiprov.events import EventLog, EventTypes
from ctiprov.obs.status import ProvisionStatus, StatusDeriver


def test_status_progression_basic(tmp_path):
    log = EventLog(tmp_path)
    deriver = StatusDeriver()

    assert deriver.derive_status(log.read()).status is ProvisionStatus.UNKNOWN
    log.emit(EventTypes.RUN_START, {})
    assert deriver.derive_status(log.read()).status is ProvisionStatus.PROVISIONING
    log.emit(EventTypes.HEALTH_ATTEMPT, {"attempt": 1})
    assert deriver.derive_status(log.read()).status is ProvisionStatus.POLLING
    log.emit(EventTypes.DONE, {})
    assert deriver.derive_status(log.read()).status is ProvisionStatus.HEALTHY


def test_error_carries_step_and_hint(tmp_path):
    log = EventLog(tmp_path)
    log.emit(EventTypes.RUN_START, {})
    log.emit(EventTypes.ERROR, {"step": "workspace", "message": "not a Git repository", "hint": "Move it"})

    info = StatusDeriver().derive_status(log.read())

    assert info.status is ProvisionStatus.FAILED
    assert info.failed_step == "workspace"
    assert info.hint == "Move it"
    assert "not a Git repository" in info.message
    assert StatusDeriver().is_terminal_status(info.status)


def test_malformed_lines_are_skipped(tmp_path):
    log = EventLog(tmp_path)
    log.emit(EventTypes.TEARDOWN_DONE, {})
    with open(log.path, "a") as f:
        f.write("{not json\n")

    assert [e["type"] for e in log.read()] == ["TEARDOWN_DONE"]
    assert StatusDeriver().derive_status(log.read()).status is ProvisionStatus.REMOVED
