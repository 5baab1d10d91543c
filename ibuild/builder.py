import glob
import hashlib
import os
import shlex
from .cli_logger import logger
from .errors import BuildError, CommandError, MissingOutputError
from .utils import run_checked, expand, expand_all, copy_path

# Architectures and their autotools host triples
ARCH_HOST_TRIPLES = {
    "arm64": "aarch64-apple-darwin",
    "arm64e": "aarch64-apple-darwin",
    "armv7": "arm-apple-darwin",
    "armv7s": "arm-apple-darwin",
    "i386": "i386-apple-darwin",
    "x86_64": "x86_64-apple-darwin",
}


def _make(builder):
    builder.run(["make", f"-j{builder.jobs}"], cwd=builder.work_dir)


def _make_install(builder):
    builder.run(["make", builder.properties.install_command or "install"], cwd=builder.work_dir)


class MakeSteps:
    """Autotools-style ``configure && make && make install``."""

    def configure(self, builder):
        configure_script = os.path.join(builder.source_root, "configure")
        args = [f"--prefix={builder.build_output}"]
        host = ARCH_HOST_TRIPLES.get(builder.architecture)
        if host:
            args.append(f"--host={host}")
        args = builder.arch_specific_args() + list(builder.properties.build_args) + args
        args = expand_all(args, builder.env)

        logger.info(f"  - Running {configure_script} with arguments: {' '.join(args)}")
        builder.run([configure_script] + args, cwd=builder.work_dir)

    def make(self, builder):
        _make(builder)

    def install(self, builder):
        _make_install(builder)


class CMakeSteps:
    """Out-of-tree CMake configure, then the generated Makefiles."""

    def configure(self, builder):
        compiler_flags = builder.env["CFLAGS"]
        args = [
            f"-DCMAKE_C_FLAGS={compiler_flags}",
            f"-DCMAKE_CXX_FLAGS={compiler_flags}",
            f"-DCMAKE_INSTALL_PREFIX={builder.build_output}",
            f"-DCMAKE_OSX_SYSROOT={builder.config.toolchain.sdk_path}",
            f"-DCMAKE_OSX_ARCHITECTURES={builder.architecture}",
            f"-DCMAKE_PREFIX_PATH={builder.config.products_root}",
            "-DPKG_CONFIG_USE_CMAKE_PREFIX_PATH=ON",
        ]
        args = args + list(builder.properties.build_args) + builder.arch_specific_args()
        args = expand_all(args, builder.env) + [builder.source_root]

        logger.info(f"  - Running CMake with arguments: {' '.join(args)}")
        builder.run(["cmake"] + args, cwd=builder.work_dir)

    def make(self, builder):
        _make(builder)

    def install(self, builder):
        _make_install(builder)


class XcodeSteps:
    """Runs ``xcodebuild`` and collects its products from SYMROOT."""

    configuration = "Release"

    def products_dir(self, builder):
        return os.path.join(builder.work_dir, f"{self.configuration}-{builder.config.platform}")

    def configure(self, builder):
        args = [
            "-sdk", builder.config.platform,
            "-arch", builder.architecture,
            "-configuration", self.configuration,
            f"SYMROOT={builder.work_dir}",
            f"OBJROOT={os.path.join(builder.work_dir, 'Intermediates')}",
            "ONLY_ACTIVE_ARCH=NO",
        ]
        args = args + list(builder.properties.build_args) + builder.arch_specific_args()
        args = expand_all(args, builder.env) + ["build"]

        logger.info(f"  - Running xcodebuild with arguments: {' '.join(args)}")
        builder.run(["xcodebuild"] + args, cwd=builder.source_root)

    def make(self, builder):
        pass

    def install(self, builder):
        products_dir = self.products_dir(builder)
        for output in builder.properties.outputs:
            source = os.path.join(products_dir, output)
            if os.path.exists(source):
                copy_path(source, os.path.join(builder.build_output, output))

        # Loose swiftmodules land beside the products
        swiftmodules = glob.glob(os.path.join(products_dir, "*.swiftmodule"))
        for swiftmodule in swiftmodules:
            copy_path(swiftmodule, os.path.join(builder.build_output, "swiftmodules", os.path.basename(swiftmodule)))


class CustomSteps:
    """User supplied configure/make/install command lines."""

    def _run_command(self, builder, command):
        args = expand_all(shlex.split(command), builder.env)
        if not args:
            return
        executable = args[0]
        if not os.path.isabs(executable):
            executable = os.path.join(builder.source_root, executable)
        logger.info(f"  - Running {executable} {' '.join(args[1:])}")
        builder.run([executable] + args[1:], cwd=builder.work_dir)

    def configure(self, builder):
        self._run_command(builder, builder.properties.custom_properties.configure)

    def make(self, builder):
        self._run_command(builder, builder.properties.custom_properties.make)

    def install(self, builder):
        self._run_command(builder, builder.properties.custom_properties.install)


BUILD_STEPS = {
    "make": MakeSteps,
    "cmake": CMakeSteps,
    "xcode": XcodeSteps,
    "custom": CustomSteps,
}


def package_intermediates_dir(intermediates_root, package_name, package_root):
    """Intermediates of one package, distinct for every package root sharing a name."""
    digest = hashlib.sha1(os.path.abspath(package_root).encode("utf-8")).hexdigest()[:10]
    return os.path.join(intermediates_root, f"{package_name}-{digest}")


class ArchitectureBuilder:
    """Builds one package for one architecture into its own output directory.

    Layout: ``<intermediates>/<package>-<root hash>/<platform>-<arch>/configure``
    is the working directory handed to the build system, ``.../build`` the install
    prefix whose contents are later merged across architectures.
    """

    def __init__(self, package_name, properties, package_root, source_root, config, architecture):
        self.package_name = package_name
        self.properties = properties
        self.package_root = package_root
        self.source_root = source_root
        self.config = config
        self.architecture = architecture
        self.jobs = config.jobs
        self.steps = BUILD_STEPS[properties.build_system]()

        package_dir = package_intermediates_dir(config.intermediates_root, package_name, package_root)
        arch_root = os.path.join(package_dir, f"{config.platform}-{architecture}")
        self.work_dir = os.path.join(arch_root, "configure")
        self.build_output = os.path.join(arch_root, "build")
        self.env = self._build_environment()

    def _pkg_config_path(self):
        pattern = os.path.join(
            self.config.intermediates_root, "*", f"{self.config.platform}-{self.architecture}", "build", "lib", "pkgconfig"
        )
        paths = sorted(path for path in glob.glob(pattern) if not path.startswith(self.build_output + os.sep))
        paths.append(os.path.join(self.config.products_root, "lib", "pkgconfig"))
        return os.pathsep.join(paths)

    def _build_environment(self):
        toolchain = self.config.toolchain
        flags = f"-arch {self.architecture} -isysroot {toolchain.sdk_path} {self.config.deployment_target}"
        env = {
            "CC": toolchain.cc,
            "CXX": toolchain.cxx,
            "AR": toolchain.ar,
            "RANLIB": toolchain.ranlib,
            "SDKROOT": toolchain.sdk_path,
            "CFLAGS": flags,
            "CXXFLAGS": flags,
            "LDFLAGS": flags,
            "ARCH": self.architecture,
            "PLATFORM_NAME": self.config.platform,
            "PKGROOT": self.package_root,
            "SRCROOT": self.source_root,
            "BUILDROOT": self.config.products_root,
            "PREFIX": self.build_output,
            "PKG_CONFIG_PATH": self._pkg_config_path(),
            "PKG_CONFIG_LIBDIR": os.path.join(self.config.products_root, "lib", "pkgconfig"),
            "IBUILD_CURRENT_PACKAGE_ROOT": self.package_root,
        }
        custom = self.properties.custom_properties
        if custom is not None:
            env.update(custom.env)
            env = {name: expand(value, env) for name, value in env.items()}
        return env

    def arch_specific_args(self):
        return self.properties.arch_specific_args(self.config.platform, self.architecture)

    def output_path(self, output):
        return os.path.join(self.build_output, output)

    def has_built(self):
        """True when every declared output already exists for this architecture."""
        outputs = self.properties.outputs
        return bool(outputs) and all(os.path.exists(self.output_path(output)) for output in outputs)

    def run(self, command, cwd):
        env = os.environ.copy()
        env.update(self.env)
        return run_checked(command, env=env, cwd=cwd)

    def build(self):
        """Configure, make and install unless the outputs are already present.

        Returns the architecture's build output directory.
        """
        if self.has_built():
            logger.info(f"  - Already built all outputs of {self.package_name} for {self.architecture}.")
            return self.build_output

        logger.info(f"Building {self.package_name} for {self.architecture} with {self.properties.build_system}...")
        os.makedirs(self.work_dir, exist_ok=True)
        os.makedirs(self.build_output, exist_ok=True)
        try:
            self.steps.configure(self)
            self.steps.make(self)
            self.steps.install(self)
        except CommandError as e:
            raise BuildError(f"Building {self.package_name} for {self.architecture} failed: {e}") from e

        missing = [output for output in self.properties.outputs if not os.path.exists(self.output_path(output))]
        if missing:
            raise MissingOutputError(
                f"{self.package_name} ({self.architecture}) did not produce: {', '.join(missing)}",
                hint=f"Check the outputs declared in {self.package_name}'s manifest against {self.build_output}",
            )

        logger.success(f"  - Built {self.package_name} for {self.architecture}.")
        return self.build_output
