class StoreError(Exception):
    """The persistent store rejected or failed a read or write."""


class RecordNotFound(StoreError):
    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} record {record_id!r} not found")
        self.collection = collection
        self.record_id = record_id


class InvalidStatusTransition(ValueError):
    def __init__(self, current, requested):
        super().__init__(f"Cannot move appointment from {current.value} to {requested.value}")
        self.current = current
        self.requested = requested


class CollaboratorUnavailable(Exception):
    """An extraction or generation call failed, timed out or returned garbage."""


class PromotionPartialFailure(StoreError):
    """A temporary patient was created in the store but the prescription append failed.

    ``patient`` is the new persistent record; retry the append against its id.
    """

    def __init__(self, patient, cause: Exception):
        super().__init__(f"Patient {patient.id} was created but the prescription was not saved: {cause}")
        self.patient = patient
        self.cause = cause
