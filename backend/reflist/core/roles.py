# reflist/core/roles.py

import enum


class ParticipantRole(str, enum.Enum):
    OWNER = "owner"    # account controls the participant and receives its earnings
    MEMBER = "member"  # read access only


class WorkspaceRole(str, enum.Enum):
    OWNER = "owner"
    MEMBER = "member"
