#!/usr/bin/env python3

# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Setup configuration for scanstack_common package.

This shared library provides utilities for the crawl Lambda functions including:
- SQS lease broker with dead-letter relocation and enqueue retry
- Playwright page crawl state machine
- axe-core accessibility scan delegate
- DynamoDB and S3 result sinks
- Link discovery for crawled pages
"""

from setuptools import find_packages, setup

setup(
    name="scanstack_common",
    version="0.1.0",
    description="Shared utilities for crawl Lambda functions",
    package_dir={"": "lib"},
    packages=find_packages("lib"),
    python_requires=">=3.11",
    install_requires=[
        "boto3>=1.34.0",
        # Crawling dependencies
        "playwright>=1.45.0",
        "beautifulsoup4>=4.12.0",
        "lxml>=5.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "moto[s3,sqs,dynamodb]>=5.0.0",
        ],
    },
    author="Development Team",
    license="MIT-0",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
)
