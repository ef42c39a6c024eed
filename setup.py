from pathlib import Path
from setuptools import setup, find_packages

with open("README.md") as fp:
    long_description = fp.read()

with Path("src", "scnlib", "__init__.py").open() as fp:
    for line in fp:
        if line.startswith("__version__"):
            version = line.split("=")[1].strip().strip('"')

setup(
    name="scnlib",
    version=version,
    description="Import library for Bio-Rad Image Lab '.scn' gel and blot images.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages("src", include=["scnlib", "scnlib.*"]),
    python_requires=">=3.10",
    install_requires=["numpy"],
    extras_require={"tests": ["pytest"]},
    tests_require=["pytest"],
)
