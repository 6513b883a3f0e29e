# assetflow_pipeline.py
# Pipeline for a static site: styles, scripts, views with partials, media.
from __future__ import annotations

from assetflow.dsl import declare, group, task
from assetflow.transforms import Command, FileInclude, Inject, Rename, SvgStore, chain, copy


def svg_symbol_name(stem):
    # arrow-left -> SVGArrowLeft
    return "SVG" + "".join(word[:1].upper() + word[1:] for word in stem.split("-"))


def pipeline():
    return declare(
        # Copy (if changed) root files (robots.txt, .htaccess, ...) into build/
        task("root", ["dev/root/*", "dev/root/.htaccess"], "build/", copy),

        # Fonts, audio, video and vendor scripts are copied as-is
        task("fonts", "dev/extra/fonts/*", "build/assets/fonts/", copy),
        task("audio", "dev/media/audio/*.*", "build/assets/audio/", copy),
        task("video", "dev/media/video/*.*", "build/assets/video/", copy),
        task("scripts-vendor", "dev/scripts/vendor/*.js", "build/assets/js/vendor/", copy),

        # Images: optimisation is delegated to svgo/imagemin-style tools if wanted
        task("images", "dev/media/images/*.{png,jpg,gif}", "build/assets/img/", copy),

        # Optimise icons and merge them into one inline sprite for the views
        task(
            "svg",
            "dev/media/svg/*.svg",
            "build/assets/img/",
            SvgStore(
                Rename(Command(["svgo", "--input=-", "--output=-"]), basename=svg_symbol_name),
                name="svg.svg",
            ),
        ),

        # Pre-generated favicon set plus the <link> partial injected into views
        task("favicons", "dev/media/favicon/*", "build/assets/favicons/", copy),

        # Compile the style entry point; partials only trigger a rebuild
        task(
            "styles",
            "dev/styles/index.scss",
            "build/assets/css/",
            Rename(
                Command(["sass", "--stdin", "--style=compressed", "--load-path=dev/styles"], extension=".css"),
                basename="styles",
                suffix=".min",
            ),
            inputs="dev/styles/**/*.scss",
        ),

        # Bundle and minify the script entry point
        task(
            "scripts",
            "dev/scripts/scripts.js",
            "build/assets/js/",
            Rename(Command(["esbuild", "--bundle", "--minify", "--sourcefile={path}"]), suffix=".min"),
            needs="scripts-vendor",
            inputs="dev/scripts/modules/*.js",
        ),

        # Top-level views only; partials are pulled in by @@include(...),
        # then the favicon links and the SVG sprite are injected
        task(
            "views",
            "dev/views/*.html",
            "build/",
            chain(
                FileInclude("dev/views/partials/"),
                Inject(source="build/assets/favicons/favicons.html", start_tag="<!-- inject:head:{ext} -->"),
                Inject(source="build/assets/img/svg.svg"),
            ),
            needs=["favicons", "svg"],
            inputs="dev/views/partials/*.html",
        ),

        task("package", needs=["root", "styles", "scripts", "views", "fonts", "audio", "video"]),

        groups={
            "default": group("svg", "package"),
            "styles": group("styles"),
            "media": group("images", "audio", "video"),
        },
    )
