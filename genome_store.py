"""
Genome persistence for TankEvo.

One JSON file under a single well-known path holds the best genome.
Saving is atomic (write to a temp file, then replace); loading is
best-effort and reports "absent" as None.
"""

import json
import logging
import os
import tempfile

from config import GENOME_PATH, INPUT_SIZE, HIDDEN_SIZE, OUTPUT_SIZE
from errors import ConfigurationError, PersistenceError
from genome import Genome

log = logging.getLogger(__name__)


class GenomeStore:

    def __init__(self, path: str = GENOME_PATH, input_size: int = INPUT_SIZE,
                 hidden_size: int = HIDDEN_SIZE, output_size: int = OUTPUT_SIZE):
        self.path = path
        self.sizes = (input_size, hidden_size, output_size)

    def save(self, genome: Genome):
        """Overwrite the stored genome.  Raises PersistenceError on I/O failure."""
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".genome-", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(genome.to_dict(), f, indent=2)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as exc:
            raise PersistenceError(f"could not write {self.path}: {exc}") from exc

    def load(self):
        """Stored genome, or None if missing, unreadable or the wrong shape."""
        if not os.path.isfile(self.path):
            return None
        try:
            with open(self.path) as f:
                obj = json.load(f)
        except (OSError, ValueError) as exc:
            log.warning("ignoring unreadable genome file %s: %s", self.path, exc)
            return None
        input_size, hidden_size, output_size = self.sizes
        try:
            return Genome.from_dict(obj, input_size, hidden_size, output_size)
        except ConfigurationError as exc:
            log.warning("ignoring genome file %s: %s", self.path, exc)
            return None

    def load_or_random(self, rng=None) -> Genome:
        genome = self.load()
        if genome is None:
            input_size, hidden_size, output_size = self.sizes
            genome = Genome.random(rng, input_size, hidden_size, output_size)
        return genome
