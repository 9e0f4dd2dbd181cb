import setuptools

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open('requirements.txt') as f:
    required = f.read().splitlines()

setuptools.setup(
    name="parlbm",
    version="0.1.0",
    author="Hugues de Laroussilher",
    author_email="huguesdelaroussilhe@gmail.com",
    description="A 2D lattice-Boltzmann solver advanced by a pool of worker threads.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/hlasco/rllbm",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    install_requires=required,
    extras_require={
        "test": ["pytest"],
        "examples": ["netCDF4", "rich"],
    },
    packages=setuptools.find_namespace_packages(include = ["parlbm", "parlbm.*"]),
    python_requires=">=3.8",
)
