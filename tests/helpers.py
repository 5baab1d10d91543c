import os
from ibuild.config import BuildConfig, Toolchain

TOOLCHAIN = Toolchain(
    cc="/toolchain/clang",
    cxx="/toolchain/clang++",
    ar="/toolchain/ar",
    ranlib="/toolchain/ranlib",
    sdk_path="/sdk/iPhoneOS.sdk",
    lipo="/toolchain/lipo",
)


def make_config(package_root, architectures=("arm64", "armv7"), **kwargs):
    return BuildConfig(package_root=package_root, toolchain=TOOLCHAIN, architectures=architectures, jobs=2, **kwargs)


def write_file(path, content=""):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write(content)
    return path
