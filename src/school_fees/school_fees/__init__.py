"""School fees package.

Feature modules (fees, absence_fines, students, users) each carry a model,
a repository Protocol with a MySQL implementation, a service holding the
use cases and a thin Flask JSON controller.
"""
