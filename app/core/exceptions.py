class StoreUnavailable(Exception):
    """Raised when the backing database cannot be reached or times out.

    Transient infrastructure fault: nothing was written, and the request
    is answered with a generic 503.
    """

    def __init__(self, operation: str):
        super().__init__(f"Store unavailable during {operation}")
        self.operation = operation
