from setuptools import setup, find_namespace_packages
from os import path

requires = [
    "colorlog~=6.4",
    # lower bound because of the pydantic v2 validator api
    "pydantic>=2.5,<3",
]


# read the contents of your README file
this_directory = path.abspath(path.dirname(__file__))
with open(path.join(this_directory, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

version = "1.0.0"

setup(
    version=version,
    python_requires=">=3.10",  # also update classifiers
    # Meta data
    name="clustersnap",
    description="Declarative lifecycle management of database cluster snapshots",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Inmanta",
    author_email="code@inmanta.com",
    license="Apache Software License 2",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: System Administrators",
        "Operating System :: POSIX :: Linux",
        "Topic :: System :: Systems Administration",
        "Topic :: Utilities",
        "Programming Language :: Python :: 3.10",
    ],
    keywords="orchestrator orchestration configurationmanagement snapshot",
    # Packaging
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src"),
    zip_safe=False,
    include_package_data=True,
    install_requires=requires,
    extras_require={
        "test": ["pytest>=7"],
    },
)
