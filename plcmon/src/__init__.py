"""
PLC monitor package.

Polls register values from industrial controllers over Modbus TCP or the
Mitsubishi MC protocol, keeps recent samples in memory and all samples in a
local SQLite store, rolls an energy accumulator up into hourly buckets, and
serves everything through a small JSON API.

CHANGELOG:
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""
