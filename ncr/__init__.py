"""Node Config Reconciler (NCR).

Keeps one host's files and systemd units in line with a published
desired-state document:
 - assembles owner and extension declarations into one desired state
 - diffs it against the last applied state (not the live filesystem)
 - plans file, enablement, reload and command steps in a safe order
 - executes best-effort and records every failure
 - exits for a supervisor restart when its own unit changed

The applied-state baseline is persisted after every apply attempt.
"""
