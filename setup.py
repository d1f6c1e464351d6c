"""
meetingsync - cross-device sync for meetings and stakeholders
"""

from setuptools import setup, find_packages

setup(
    name="meetingsync",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    description="Cross-device sync engine for meetings, stakeholders and stakeholder categories",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    license="MIT",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    install_requires=[
        "httpx>=0.24.0",
        "aiofiles>=23.0.0",
        "click>=8.0.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "boto3>=1.26.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
        ],
        "s3": ["boto3>=1.26.0"],
    },
    entry_points={
        "console_scripts": [
            "meetingsync=meetingsync.cli:main",
        ],
    },
)
