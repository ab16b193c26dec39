"""Backoff configuration for repeated passes over an endpoint list."""


class RetryConfig:
    """
    Configuration for retry behavior after every endpoint of a network failed.

    A "pass" tries each endpoint once, in order. ``max_retries`` extra passes are
    made after the first one, waiting an exponentially growing delay between them.

    Parameters
    ----------
    max_retries : int
        Extra passes over the endpoint list (0 means a single pass)
    base_delay : float
        Delay in seconds before the first extra pass
    max_delay : float
        Maximum delay between passes
    exponential_base : float
        Base for exponential backoff calculation

    """

    def __init__(
        self,
        max_retries: int = 0,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
    ) -> None:
        if max_retries < 0:
            msg = "max_retries must be >= 0"
            raise ValueError(msg)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base

    @property
    def passes(self) -> int:
        return self.max_retries + 1

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay before the next pass using exponential backoff.

        Parameters
        ----------
        attempt : int
            Index of the pass that just failed (0-indexed)

        Returns
        -------
        float
            Delay in seconds

        """
        delay = self.base_delay * (self.exponential_base**attempt)
        return min(delay, self.max_delay)
