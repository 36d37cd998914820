"""External collaborators: automated responder and transcript hand-off."""
