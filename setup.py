from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf8") as long_desc_fd:
    long_description = long_desc_fd.read()

with open('version', 'r') as version_fd:
    version = version_fd.read().strip('\n')


def read_requirements(filename):
    requirements = []

    with open(filename, 'r') as requirements_fd:
        for requirement in requirements_fd:
            # skip empty lines
            requirement = requirement.strip()

            if requirement:
                requirements.append(requirement)

    return requirements


setup(
    name="filerush",
    version=version,
    description="Serves big files over HTTP with event-loop, worker-pool "
                "and lightweight-thread I/O strategies to compare them",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=['filerush', 'filerush.*']),
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX :: Linux",
    ],
    python_requires=">=3.9",
    install_requires=read_requirements('requirements.txt'),
    extras_require={
        'test': read_requirements('requirements-test.txt'),
    },
    entry_points={
        'console_scripts': ['filerush=filerush.__main__:main'],
    },
)
