"""Municipal attendance & payroll approval package.

Feature modules (attendance, workflow, scope, payroll, sync, ...) sit on top of
a repository layer; the synchronization session is the service object the
outer surfaces talk to.
"""
