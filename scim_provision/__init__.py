"""scim-provision: lifecycle hook that mirrors identity-provider users into a SCIM 2.0 directory.

On every user create/update event the hook finds or creates a group named after
the login connection, finds or creates the user (keyed by an external id derived
from the email address), and adds the user to the group.
"""

__version__ = "0.3.0"
