"""dfirlab - local DFIR lab on Minikube."""

__version__ = "0.3.0"
