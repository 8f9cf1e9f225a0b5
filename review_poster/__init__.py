"""Review Poster - post AI-drafted review comments as pull request threads.

Groups AI-generated review comments into discussion threads and posts them to an
Azure DevOps pull request with batching, retries and cooperative cancellation.
"""

__version__ = "0.1.0"
__author__ = "trobanga"
