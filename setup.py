from setuptools import setup, find_packages


setup(
    name="weave",
    version="0.1",
    packages=find_packages(include=["weave", "weave.*"]),
    python_requires=">=3.11",
    description="Package a directory into a shared base tar plus spliced per-configuration archives.",
    author="weave contributors",
    install_requires=[
        "pycryptodomex>=3.23.0",
        "argon2-cffi>=23.1.0",
        "requests>=2.31.0",
        "boto3>=1.28.0",
        "botocore>=1.31.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "weave=weave.cli:main",
        ]
    },
)
