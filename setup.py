import os
import sys
import setuptools
from setuptools.command.install import install

# The version of this package
VERSION = "0.2.0"


class VerifyVersionCommand(install):
    """
    Custom command to verify that the git tag matches the package version.
    Source: https://circleci.com/blog/continuously-deploying-python-packages-to-pypi-with-circleci/
    """

    description = "verify that the git tag matches the package version"

    def run(self):
        tag = os.getenv("CIRCLE_TAG")

        if tag != VERSION:
            info = (
                f"Git tag: {tag} does not match the version of this package: {VERSION}"
            )
            sys.exit(info)


with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="bavard-dict-storage",
    version=VERSION,
    author="Bavard AI, Inc.",
    author_email="dev@bavard.ai",
    description="Partitioned dictionary storage for pydantic models on DynamoDB, Firestore, and S3",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/bavard-ai/bavard-dict-storage",
    packages=setuptools.find_packages(exclude=["test", "test.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0",
        "loguru>=0.5.1",
        "tenacity>=8.2.0"
    ],
    extras_require={
        "aws": ["boto3>=1.17.0"],
        "gcp": ["google-cloud-firestore>=2.1.0", "google-api-core>=1.26.0"],
        "test": [
            "pytest>=6.2.0",
            "boto3>=1.17.0",
            "google-cloud-firestore>=2.1.0",
            "google-api-core>=1.26.0"
        ],
    },
    cmdclass={"verify": VerifyVersionCommand},
)
