"""
Deployment tooling for the Laravel ECS stack.

This package contains the operator-side components:
- AWS tooling (ECR setup, ECS deploy and release, cleanup, monitoring)
- CI/CD pipeline self-tests and the Jenkins client
- The ``deploy-kit`` command line
"""
