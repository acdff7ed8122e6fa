"""Domain primitives: scalar aliases.

Scalar aliases may be promoted to proper value objects later without changing imports.
"""

from __future__ import annotations

type TargetKey = str
type ManagementNumber = str
type EquipmentSerial = str
type Year = int
