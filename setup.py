from setuptools import setup, find_packages

TEST_REQUIREMENTS = ["pytest", "boto3", "moto[sqs]>=5"]

setup(
    name="queue-shift",
    version="0.3.0",
    license="Apache License 2.0",
    packages=find_packages(exclude=["tests"]),

    author="Open Data Cube",
    author_email="",
    maintainer="Open Data Cube",
    maintainer_email="",

    description="Move messages between SQS queues, optionally filtered by a message attribute",
    long_description="",
    python_requires=">=3.8",
    install_requires=[
        "botocore",
        "click",
        "toolz",
    ],
    tests_require=TEST_REQUIREMENTS,
    extras_require={
        "tests": TEST_REQUIREMENTS,
    },
    entry_points={
        "console_scripts": [
            "queue-shift = queue_shift.cli:cli",
        ]
    },
    zip_safe=False,
)
