# Import every model so relationship() targets resolve on first mapper use
from . import user, household, animal, medication, regimen, administration, cosign, audit  # noqa: F401
