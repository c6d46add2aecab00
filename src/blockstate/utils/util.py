from typing import Optional

import numpy as np


def set_random_seed(seed: Optional[int]):
    return np.random.default_rng(seed)
