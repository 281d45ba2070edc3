from typing import Optional

import numpy as np

def set_random_seed(seed: Optional[int]) -> np.random.Generator:
    return np.random.default_rng(seed)
