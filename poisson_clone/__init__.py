"""
**Poisson Clone**

Seamless cloning of image regions by solving the discrete Poisson equation
in the gradient domain (Perez et al., "Poisson Image Editing", 2003).

Submodules:
- img     - load, convert and save rasters
- region  - mask -> cloning region
- solver  - guidance field assembly and Gauss-Seidel / SOR solve
- cli     - command line front end

Example:
```python
import poisson_clone as pc

result = pc.solve(pc.img.open("source.png"),
                  pc.img.open_mask("mask.png"),
                  pc.img.open("destination.png"))
```
"""
from . import img
from . import region
from . import solver

from .solver import SolverConfig, SolveProgress, SolveInfo, \
                    solve, solve_with_info, seamless_clone, solve_batch

__version__ = "0.1.0"
